from __future__ import annotations
import asyncio
import logging
import os
from functools import lru_cache, partial
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from video_notes.config import Settings
from video_notes.errors import MissingReference, PipelineError, PipelineTimeout, RateLimited
from video_notes.pipeline import SummaryPipeline, build_pipeline

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="YT Video Notes", version="1.0.0")


class SummarizeReq(BaseModel):
    url: Optional[str] = Field(default=None, validation_alias=AliasChoices("url", "videoReference"))


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_pipeline_factory() -> Callable[[Settings], SummaryPipeline]:
    return build_pipeline


def error_response(err: PipelineError) -> JSONResponse:
    body = {"error": err.message, "code": err.code}
    headers = {}
    if isinstance(err, RateLimited):
        body["retryAfter"] = err.signal.cooldown
        headers["Retry-After"] = str(err.signal.cooldown)
        if err.signal.transcript:
            body["transcript"] = err.signal.transcript
    return JSONResponse(status_code=err.status_code, content=body, headers=headers)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # 깨진 JSON / 빈 body 는 입력 없음으로 취급
    return error_response(MissingReference())


@app.post("/api/summarize")
@app.post("/summarize")
async def summarize(
    req: SummarizeReq,
    settings: Settings = Depends(get_settings),
    pipeline_factory: Callable[[Settings], SummaryPipeline] = Depends(get_pipeline_factory),
):
    if not req.url or not req.url.strip():
        raise MissingReference()

    try:
        pipeline = pipeline_factory(settings)
        # 워커 스레드는 취소되지 않는다. 한도를 넘기면 504 를 먼저 보내고,
        # 스레드는 pipeline_budget 으로 줄어든 타임아웃 안에서 스스로 끝난다
        loop = asyncio.get_running_loop()
        out = await asyncio.wait_for(
            loop.run_in_executor(None, partial(pipeline.run, req.url)),
            timeout=settings.request_timeout,
        )
    except PipelineError:
        raise
    except asyncio.TimeoutError:
        logger.error("Request for %s exceeded %.0fs", req.url, settings.request_timeout)
        raise PipelineTimeout()
    except Exception:
        logger.exception("Critical failure while summarizing %s", req.url)
        raise PipelineError()
    return out.to_dict()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("video_notes.main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
