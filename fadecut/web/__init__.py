"""Flask application factory for the FadeCut web UI."""

import tempfile
from pathlib import Path

from flask import Flask, jsonify

from fadecut.settings import Settings
from fadecut.web.loop import LoopThread


def create_app(
    work_dir: Path | None = None,
    settings: Settings | None = None,
    engine=None,
    prober=None,
) -> Flask:
    """Build the app.

    ``engine`` and ``prober`` replace the ffmpeg engine and ffprobe call;
    tests use them to run without ffmpeg installed.
    """
    app = Flask(__name__)
    app.config["WORK_DIR"] = work_dir or Path(tempfile.mkdtemp(prefix="fadecut_"))
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024 * 1024  # 10 GB
    app.config["SETTINGS"] = settings or Settings()
    app.config["ENGINE"] = engine
    app.config["PROBER"] = prober
    app.extensions["fadecut_loop"] = LoopThread()

    from fadecut.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def request_entity_too_large(error):
        return jsonify({"error": "File too large"}), 413

    return app
