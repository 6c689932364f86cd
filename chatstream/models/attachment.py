"""
File upload and extraction job models.
"""

from typing import Optional

from pydantic import BaseModel, Field


class FileUploadRequest(BaseModel):
    """Request body for POST /files/upload."""

    conversation_id: str = Field(..., alias="conversationId")
    filename: str = Field(..., max_length=255)
    data_url: str = Field(..., alias="dataUrl", description="data:<mime>;base64,<payload>")

    model_config = {"populate_by_name": True}


class FileUploadResponse(BaseModel):
    """Stored upload reference."""

    blob_name: str = Field(..., alias="blobName")
    content_type: str = Field(..., alias="contentType")
    original_filename: str = Field(..., alias="originalFilename")
    size: int

    model_config = {"populate_by_name": True}


class FileProcessRequest(BaseModel):
    """Request body for POST /files/process. All fields are required."""

    blob_name: Optional[str] = Field(None, alias="blobName")
    content_type: Optional[str] = Field(None, alias="contentType")
    original_filename: Optional[str] = Field(None, alias="originalFilename")
    conversation_id: Optional[str] = Field(None, alias="conversationId")

    model_config = {"populate_by_name": True}

    def missing_fields(self) -> list[str]:
        """Return the wire names of absent fields."""
        missing = []
        for name, field in type(self).model_fields.items():
            if not getattr(self, name):
                missing.append(field.alias or name)
        return missing


class ExtractionResult(BaseModel):
    """Outcome of one extraction job."""

    conversation_id: str
    blob_name: str
    original_filename: str
    text: str = ""
    error: Optional[str] = None
