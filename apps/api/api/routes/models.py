from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query

from api.schemas.common import validate_model_name
from api.schemas.model import (
    ModelActionOut,
    ModelDetailsOut,
    ModelListOut,
    ModelLookupOut,
    ModelOut,
)
from services.model_lookup import ModelLookupError, ModelLookupService
from services.ollama import OllamaClient, OllamaError

router = APIRouter(prefix="/models", tags=["models"])


@lru_cache(maxsize=1)
def _ollama() -> OllamaClient:
    return OllamaClient()


@lru_cache(maxsize=1)
def _lookup() -> ModelLookupService:
    return ModelLookupService()


def _checked_name(name: str) -> str:
    try:
        return validate_model_name(name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("", response_model=ModelListOut)
def list_models() -> ModelListOut:
    return ModelListOut(models=[ModelOut(**m) for m in _ollama().list_models()])


# Registered before the {name:path} routes so "lookup" is not read as a model.
@router.get("/lookup", response_model=ModelLookupOut)
def lookup_model(repo: str = Query("")) -> ModelLookupOut:
    """
    Remote registry metadata for `org/name`, including GGUF variants.
    """
    try:
        data = _lookup().lookup(repo)
    except ModelLookupError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ModelLookupOut(**data)


@router.post("/{name:path}/start", response_model=ModelActionOut)
def start_model(name: str) -> ModelActionOut:
    name = _checked_name(name)
    try:
        _ollama().start(name)
    except OllamaError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ModelActionOut(message=f'Model "{name}" started')


@router.post("/{name:path}/stop", response_model=ModelActionOut)
def stop_model(name: str) -> ModelActionOut:
    name = _checked_name(name)
    try:
        _ollama().stop(name)
    except OllamaError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ModelActionOut(message=f'Model "{name}" stopped')


@router.get("/{name:path}", response_model=ModelDetailsOut)
def get_model(name: str) -> ModelDetailsOut:
    name = _checked_name(name)
    try:
        details = _ollama().show(name)
    except OllamaError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ModelDetailsOut(**details)


@router.delete("/{name:path}", response_model=ModelActionOut)
def delete_model(name: str) -> ModelActionOut:
    name = _checked_name(name)
    try:
        _ollama().delete(name)
    except OllamaError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return ModelActionOut(message=f'Model "{name}" deleted')
