"""
SquashBot application package.

  app/repositories/  pure I/O: SQLAlchemy sessions in, domain dataclasses out.
  app/services/      business logic: deadlines, recurrence, the event state
                     machine and the scheduler tick.

``squashbot.py`` is the integration point: it builds the repositories and
services once and hands them to the Discord bot (``discord_bot.py``) and the
HTTP API (``api_server.py``).  Neither front end touches the database directly.
"""
