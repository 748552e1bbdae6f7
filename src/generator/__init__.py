"""Server configuration generation.

generate() is pure; write_generated() places its result in the build tree.
"""

from generator.conf import Block, quote, render
from generator.contributors import (
    CONTRIBUTORS,
    GeneratedConfig,
    GeneratorInput,
    generate,
)
from generator.mime_types import MIME_TYPES
from generator.output import WrittenConfig, write_generated

__all__ = [
    'Block',
    'CONTRIBUTORS',
    'GeneratedConfig',
    'GeneratorInput',
    'MIME_TYPES',
    'WrittenConfig',
    'generate',
    'quote',
    'render',
    'write_generated',
]
