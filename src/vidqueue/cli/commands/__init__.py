"""vidqueue CLI commands."""

# models.py
from .models import models

# run.py
from .run import run

# validate.py
from .validate import validate

__all__ = ["models", "run", "validate"]
