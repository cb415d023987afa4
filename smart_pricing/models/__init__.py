# Database models
#
# Import core so every mapped class is registered on Base.metadata before
# create_all() runs (app startup, tests, alembic).

from . import core
