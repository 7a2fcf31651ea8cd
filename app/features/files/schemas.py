from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # Le client attend du camelCase (fileId, originalName...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadOut(CamelModel):
    message: str = "File processed successfully"
    file_id: int


class FileOut(CamelModel):
    id: int
    original_name: str
    status: str
    has_pii: bool
    has_pci: bool
    encrypted: bool
    created_at: Optional[datetime] = None
    processed_url: Optional[str] = None
    transcript_url: Optional[str] = None


class FileListOut(CamelModel):
    files: List[FileOut]


class ReviseIn(BaseModel):
    text: str = Field(..., examples=["Bonjour, ceci est la transcription corrigée."])


class ReviseOut(CamelModel):
    message: str = "Revised transcript saved"
    revised_transcript_key: str
    revised_transcript_url: str


class RetranscribeIn(BaseModel):
    provider: str = Field("auto", examples=["auto", "openai", "deepgram", "assemblyai"])


class RetranscribeOut(CamelModel):
    message: str = "Re-transcribed"
    transcript_key: str
    transcript_url: str
    provider: str
