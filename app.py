"""
Render Service - renders caller-supplied animations to MP4 and uploads them.
Port: 3000
"""
import os
import sys
import threading
from datetime import datetime

from flask import Flask, jsonify, request
from loguru import logger

# Add services to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import settings
from services.render_job.errors import ErrorKind
from services.render_job.models import JobResult
from services.render_job.orchestrator import RenderJobOrchestrator

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = settings.MAX_CONTENT_LENGTH

SERVICE_NAME = settings.SERVICE_NAME
SERVICE_VERSION = settings.SERVICE_VERSION
SERVICE_PORT = settings.SERVICE_PORT

STATUS_CODES = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.SERVICE_BUSY: 503,
}

_orchestrator_lock = threading.Lock()


def get_orchestrator() -> RenderJobOrchestrator:
    """Orchestrator configured from the environment, built once on first use."""
    orchestrator = app.config.get("ORCHESTRATOR")
    if orchestrator is not None:
        return orchestrator
    with _orchestrator_lock:
        # One instance per process, so every request shares the same job slots
        orchestrator = app.config.get("ORCHESTRATOR")
        if orchestrator is None:
            orchestrator = RenderJobOrchestrator.from_settings(settings.ServiceSettings.from_env())
            app.config["ORCHESTRATOR"] = orchestrator
    return orchestrator


def result_response(result: JobResult):
    status = 200 if result.success else STATUS_CODES.get(result.error_kind, 500)
    return jsonify(result.to_response()), status


@app.route("/", methods=["GET"])
@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.utcnow().isoformat()
    })


@app.route("/render", methods=["POST"])
def render():
    """Render a video and return its public URL."""
    try:
        orchestrator = get_orchestrator()
    except ValueError as e:
        logger.error(f"Render service misconfigured: {e}")
        return result_response(JobResult.failure(ErrorKind.INTERNAL, "Render service is not configured"))

    # Malformed JSON arrives as None and is rejected after the credential check
    payload = request.get_json(silent=True)
    result = orchestrator.submit(request.headers.get("Authorization"), payload)
    return result_response(result)


@app.errorhandler(413)
def payload_too_large(error):
    return jsonify({
        "success": False,
        "error": "Request body too large",
        "errorKind": ErrorKind.INVALID_REQUEST.value,
    }), 413


if __name__ == "__main__":
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)
    logger.info(f"{SERVICE_NAME} starting on port {SERVICE_PORT}")
    app.run(host="0.0.0.0", port=SERVICE_PORT, threaded=True)
