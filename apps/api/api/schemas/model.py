from __future__ import annotations

from typing import List, Literal, Optional

from .common import CamelModel


class ModelOut(CamelModel):
    name: str
    display_name: str
    type: Literal["cpu", "gpu"] = "cpu"
    status: Literal["running", "stopped"]
    size: Optional[str] = None
    quantization: Optional[str] = None
    port: Optional[int] = None
    api_url: Optional[str] = None
    api_url_openai: Optional[str] = None
    modified_at: Optional[str] = None
    digest: Optional[str] = None


class ModelListOut(CamelModel):
    models: List[ModelOut]


class ModelDetailsOut(CamelModel):
    name: str
    type: Literal["cpu", "gpu"] = "cpu"
    status: Literal["running", "stopped"] = "stopped"
    port: Optional[int] = None
    api_url: Optional[str] = None
    api_url_openai: Optional[str] = None
    family: Optional[str] = None
    parameter_size: Optional[str] = None
    quantization: Optional[str] = None


class ModelActionOut(CamelModel):
    success: bool = True
    message: str


class GgufFileOut(CamelModel):
    filename: str
    quantization: str
    size_bytes: int = 0
    bits: int = 0


class ModelLookupOut(CamelModel):
    id: str
    author: str
    pipeline: str
    architecture: Optional[str] = None
    parameters: Optional[int] = None
    parameters_formatted: Optional[str] = None
    context_length: Optional[int] = None
    license: Optional[str] = None
    downloads: int = 0
    likes: int = 0
    last_modified: Optional[str] = None
    tags: List[str] = []
    has_gguf: bool = False
    gguf_files: List[GgufFileOut] = []
