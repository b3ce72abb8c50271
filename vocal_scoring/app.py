"""
Vocal Scoring Service: Modal.com deployment.

Serves the FastAPI app from vocal_scoring.api:
    modal deploy vocal_scoring/app.py
"""

import modal

# ---------------------------------------------------------------------------
# Modal app & image
# ---------------------------------------------------------------------------

image = (
    modal.Image.debian_slim(python_version="3.11")
    .apt_install("ffmpeg", "libsndfile1")
    .pip_install(
        "fastapi",
        "uvicorn",
        "numpy",
        "librosa",
        "praat-parselmouth",
        "scipy",
        "soundfile",
        "pydantic",
    )
    .env({"VOCAL_SCORING_SETTINGS_PATH": "/data/settings.json"})
    .add_local_python_source("vocal_scoring")
)

settings_volume = modal.Volume.from_name("vocal-scoring-settings", create_if_missing=True)

app = modal.App(name="vocal-scoring-service", image=image)


# ---------------------------------------------------------------------------
# Modal ASGI entrypoint
# ---------------------------------------------------------------------------

@app.function(timeout=300, volumes={"/data": settings_volume})
@modal.concurrent(max_inputs=10)
@modal.asgi_app()
def fastapi_app():
    """Mount the FastAPI application as a Modal web endpoint."""
    from vocal_scoring.api import web_app

    return web_app
