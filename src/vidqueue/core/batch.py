"""Batch file models: many job submissions described in one YAML file.

Example::

    jobs:
      - prompt: A neon hologram of a cat driving a sports car
        aspect_ratio: "16:9"
      - prompt: The same cat, now waving
        input_type: ImageToVideo
        image: stills/cat.png
        outputs: 2

Image paths are resolved relative to the batch file.
"""

from __future__ import annotations

import mimetypes
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vidqueue.core.errors import ConfigError
from vidqueue.core.models import InputType, SourceImage


class BatchEntry(BaseModel):
    """One job in a batch file. Submission rules are checked at submit time."""

    model_config = ConfigDict(extra="forbid")

    prompt: str
    input_type: InputType = InputType.TEXT_TO_VIDEO
    model: str | None = None
    aspect_ratio: str | None = None
    outputs: int = Field(default=1, description="Requested output count (1-4)")
    image: Path | None = None

    def load_image(self, base_dir: Path) -> SourceImage | None:
        """Read the entry's image, if any.

        Raises:
            ConfigError: If the image cannot be read.
        """
        if self.image is None:
            return None
        path = self.image if self.image.is_absolute() else base_dir / self.image
        try:
            data = path.read_bytes()
        except OSError as e:
            raise ConfigError(f"Cannot read image {path}: {e}") from e
        mime_type, _ = mimetypes.guess_type(path.name)
        return SourceImage(
            data=data,
            mime_type=mime_type or "application/octet-stream",
            filename=path.name,
        )


class BatchFile(BaseModel):
    """A list of job submissions."""

    model_config = ConfigDict(extra="forbid")

    jobs: list[BatchEntry] = Field(default_factory=list)


def load_batch(path: Path) -> BatchFile:
    """Load and structurally validate a batch file.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read batch file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    try:
        return BatchFile.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid batch file {path}: {e}") from e


__all__ = ["BatchEntry", "BatchFile", "load_batch"]
