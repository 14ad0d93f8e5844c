from __future__ import annotations

from fastapi import Header, HTTPException, Request

from vocalflow.core.errors import (
    AuthenticationError,
    DecodeError,
    EmptyResultError,
    FetchError,
    JobFailedError,
    JobTimeoutError,
    PipelineAbortedError,
    RemoteRejectionError,
    TransportError,
    VocalflowError,
)
from vocalflow.jobs.client import ExternalJobClient
from vocalflow.jobs.functions import FunctionsClient, static_credentials
from vocalflow.renderers.offline_mixer import OfflineMixer
from vocalflow.runtime.pipelines import PipelineRegistry


def bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_token(token: str | None) -> str:
    if not token:
        raise HTTPException(status_code=401, detail=AuthenticationError.default_message)
    return token


def functions_client(request: Request) -> FunctionsClient:
    return request.app.state.functions


def job_client(request: Request, token: str | None) -> ExternalJobClient:
    return ExternalJobClient(functions_client(request), static_credentials(token))


def pipeline_registry(request: Request) -> PipelineRegistry:
    return request.app.state.pipelines


def offline_mixer(request: Request) -> OfflineMixer:
    return request.app.state.mixer


def http_error(exc: VocalflowError) -> HTTPException:
    if isinstance(exc, AuthenticationError):
        return HTTPException(status_code=401, detail=exc.user_message)
    if isinstance(exc, JobTimeoutError):
        return HTTPException(status_code=504, detail=exc.user_message)
    if isinstance(exc, (EmptyResultError, DecodeError)):
        return HTTPException(status_code=422, detail=exc.user_message)
    if isinstance(exc, PipelineAbortedError):
        return HTTPException(status_code=409, detail=exc.user_message)
    if isinstance(exc, (TransportError, RemoteRejectionError, FetchError, JobFailedError)):
        return HTTPException(status_code=502, detail=exc.user_message)
    return HTTPException(status_code=500, detail=exc.user_message)
