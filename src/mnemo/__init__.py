"""mnemo: spaced-repetition scheduling and review sessions for knowledge cards."""

from mnemo.consts import VERSION

__version__ = VERSION
