"""Schema model and interface definition parser."""

from .parser import parse as parse
from .types import *
