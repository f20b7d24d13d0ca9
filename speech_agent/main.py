# speech_agent/main.py

"""FastAPI application for the podcast Speech Agent."""
import base64
import io
import logging
import time
from datetime import datetime
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from .config import MULTI_SPEAKER_PROVIDERS, settings
from .errors import ConfigurationError, ProviderError, TTSError, UnsupportedOperationError
from .models import (
    HealthResponse,
    ProviderDescription,
    ProvidersResponse,
    ScriptRequest,
    SynthesisResult,
    TTSRequest,
    TTSResponse,
    ValidationResponse,
)
from .speech_client import SpeechClient, get_speech_client, validate_tts_config

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Speech Agent",
    description="Multi-backend speech synthesis for podcast episodes.",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)


# --- Exception Handlers ---
def _error_response(request: Request, exc: TTSError, status_code: int, base_message: str) -> JSONResponse:
    error_content: dict = {"detail": base_message, "message": str(exc)}
    if isinstance(exc, ProviderError):
        error_content["provider_specific_error"] = {exc.provider: exc.message}
    if exc.classified is not None:
        error_content["classification"] = exc.classified.model_dump()

    log = logger.warning if status_code < 500 else logger.error
    log(f"{base_message} for {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content=jsonable_encoder(error_content))


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(r: Request, exc: ConfigurationError):
    return _error_response(r, exc, status.HTTP_400_BAD_REQUEST, "Invalid TTS configuration.")


@app.exception_handler(UnsupportedOperationError)
async def unsupported_operation_handler(r: Request, exc: UnsupportedOperationError):
    return _error_response(r, exc, status.HTTP_400_BAD_REQUEST, "Operation not supported by the selected TTS provider.")


@app.exception_handler(ProviderError)
async def provider_error_handler(r: Request, exc: ProviderError):
    return _error_response(r, exc, status.HTTP_502_BAD_GATEWAY, f"TTS Provider error ({exc.provider}).")


@app.exception_handler(TTSError)
async def tts_general_error_handler(r: Request, exc: TTSError):
    return _error_response(r, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "A general TTS error occurred.")


@app.exception_handler(Exception)
async def generic_exception_handler(r: Request, exc: Exception):
    logger.error(f"Unhandled exception for {r.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=jsonable_encoder({"detail": "An unexpected internal server error occurred.", "message": str(exc)}),
    )


def _audio_response(result: SynthesisResult, response_format: str, started_ns: int) -> Any:
    elapsed_time_s = round((time.perf_counter_ns() - started_ns) / 1_000_000_000, 4)
    if response_format.lower() == "base64":
        return TTSResponse(
            audio_base64=base64.b64encode(result.audio).decode("utf-8"),
            provider=result.provider.value,
            mime_type=result.mime_type,
            format=result.extension,
            size_bytes=result.size,
            elapsed_time=elapsed_time_s,
        )
    return StreamingResponse(
        io.BytesIO(result.audio),
        media_type=result.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename=synthesized_speech.{result.extension}",
            "X-TTS-Provider": result.provider.value,
            "X-Elapsed-Time-Seconds": str(elapsed_time_s),
        },
    )


# --- Endpoints ---

@app.get("/health", response_model=HealthResponse, tags=["Utility"])
async def health_check_endpoint():
    return HealthResponse(
        status="ok",
        agent="Speech Agent",
        version=app.version,
        timestamp=datetime.utcnow(),
        default_tts_provider=settings.DEFAULT_TTS_PROVIDER.value,
        tts_providers=[p.value for p in settings.get_supported_tts_providers()],
    )


@app.get("/providers", response_model=ProvidersResponse, tags=["Utility"])
async def list_providers_endpoint():
    return ProvidersResponse(
        default=settings.DEFAULT_TTS_PROVIDER.value,
        providers=[
            ProviderDescription(
                name=p.value,
                multi_speaker=p in MULTI_SPEAKER_PROVIDERS,
                configured=settings.has_credentials_for(p),
            )
            for p in settings.get_supported_tts_providers()
        ],
    )


@app.post("/tts", tags=["TTS"])
async def text_to_speech_endpoint(
    request_body: TTSRequest = Body(...),
    response_format: str = Query("stream", description="Response format: 'stream' (audio file) or 'base64' (JSON with base64 audio)", pattern="^(stream|base64)$"),
    speech_client: SpeechClient = Depends(get_speech_client),
):
    start_time_ns = time.perf_counter_ns()
    result = await speech_client.synthesize(request_body.text, request_body.speaker, request_body.options)
    return _audio_response(result, response_format, start_time_ns)


@app.post("/tts/script", tags=["TTS"])
async def script_to_speech_endpoint(
    request_body: ScriptRequest = Body(...),
    response_format: str = Query("stream", description="Response format: 'stream' (audio file) or 'base64' (JSON with base64 audio)", pattern="^(stream|base64)$"),
    speech_client: SpeechClient = Depends(get_speech_client),
):
    start_time_ns = time.perf_counter_ns()
    result = await speech_client.synthesize_script(request_body.lines, request_body.options)
    return _audio_response(result, response_format, start_time_ns)


@app.post("/tts/validate", response_model=ValidationResponse, tags=["TTS Utility"])
async def validate_provider_endpoint(
    provider: Optional[str] = Query(None, description="TTS provider name to validate against current settings"),
):
    resolved = validate_tts_config(provider, settings)
    return ValidationResponse(provider=resolved.value, valid=True)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("speech_agent.main:app", host="0.0.0.0", port=8007, reload=True, log_level=settings.LOG_LEVEL.lower())
