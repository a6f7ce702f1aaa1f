"""
Pydantic schemas for request/response models
"""

from .common import *
from .impact import *
from .project import *
from .pillar import *
from .country import *
