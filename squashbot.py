#!/usr/bin/env python3
"""
SquashBot - squash session scheduler for Discord
Creates events from weekly scaffolds, announces them, collects participants,
sends reminders and cancels under-subscribed sessions.
"""

import argparse
import json
import logging
import logging.handlers
import os
import sys
from typing import Dict, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

import database
from app.repositories import (EventRepository, ParticipantRepository,
                              ScaffoldRepository, SettingsRepository)
from app.services import (EventLock, EventService, ScaffoldService,
                          SchedulerService, SettingsService)
from app.services.event_service import format_start
from webhook_notifier import WebhookNotifier

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING', log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root SquashBot logger.

    Args:
        level:    Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                  Defaults to WARNING so normal use is quiet.
        log_file: Optional path of a rotating log file added next to the
                  console handler.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('squashbot')
    formatter = logging.Formatter('[%(levelname)s] %(name)s: %(message)s')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    if log_file and not any(isinstance(h, logging.handlers.RotatingFileHandler)
                            for h in logger.handlers):
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=1_000_000, backupCount=5, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(file_handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout squashbot.py
logger = setup_logging()

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# config key -> environment variable
ENV_OVERRIDES = {
    'discord_bot_token': 'DISCORD_BOT_TOKEN',
    'main_channel_id': 'MAIN_CHANNEL_ID',
    'admin_id': 'ADMIN_ID',
    'log_webhook_url': 'LOG_WEBHOOK_URL',
    'api_key': 'API_KEY',
    'api_port': 'API_PORT',
    'timezone': 'TIMEZONE',
    'database_url': 'DATABASE_URL',
    'check_interval_minutes': 'CHECK_INTERVAL_MINUTES',
}

CONFIG_DEFAULTS = {
    'api_port': 3010,
    'timezone': 'Europe/Belgrade',
    'database_url': 'sqlite:///squashbot.db',
    'check_interval_minutes': 5,
}

_INT_KEYS = ('api_port', 'check_interval_minutes')


def is_placeholder_value(value) -> bool:
    """Check if a value is a placeholder sentinel that should be treated as unset."""
    if value is None:
        return True
    if not isinstance(value, str):
        return False
    value = value.strip()
    return not value or value.startswith('YOUR_') or value.startswith('your_')


def load_config(config_path: str = 'config.json') -> Dict:
    """Load configuration from a JSON file, then apply environment overrides.

    ``.env`` is loaded first (python-dotenv), so variables defined there take
    precedence over the file just like real environment variables.  A missing
    file is not an error; every key can come from the environment.
    """
    load_dotenv()
    config: Dict = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            print(f"{Fore.RED}Error parsing config file: {e}")
            sys.exit(1)
    else:
        logger.info("Config file %s not found, using environment only "
                    "(copy config_template.json to get started)", config_path)

    for key, env_name in ENV_OVERRIDES.items():
        if os.getenv(env_name):
            config[key] = os.getenv(env_name)

    config = {k: v for k, v in config.items() if not is_placeholder_value(v)}
    for key, default in CONFIG_DEFAULTS.items():
        config.setdefault(key, default)
    for key in _INT_KEYS:
        try:
            config[key] = int(config[key])
        except (TypeError, ValueError):
            print(f"{Fore.YELLOW}Invalid {key} {config[key]!r}, using {CONFIG_DEFAULTS[key]}")
            config[key] = CONFIG_DEFAULTS[key]
    return config


# ---------------------------------------------------------------------------
# Application wiring
# ---------------------------------------------------------------------------

class SquashBot:
    """Builds repositories and services once and exposes them as attributes.

    Front ends (Discord bot, HTTP API, CLI) use ``settings``, ``events``,
    ``scaffolds`` and ``scheduler``; none of them touch the database directly.
    """

    def __init__(self, config: Dict, session_factory=None) -> None:
        self.config = config
        self.session_factory = session_factory or database.create_session_factory(
            config.get('database_url'))
        database.init_db(self.session_factory)

        self.notifier = WebhookNotifier(config)
        self.settings = SettingsService(
            SettingsRepository(self.session_factory),
            defaults={key: config.get(key) for key in ('timezone', 'admin_id', 'main_channel_id')},
        )
        self.event_repository = EventRepository(self.session_factory)
        self.scaffold_repository = ScaffoldRepository(self.session_factory)
        self.participant_repository = ParticipantRepository(self.session_factory)

        self.lock = EventLock()
        self.events = EventService(self.event_repository, self.participant_repository,
                                   self.settings, notifier=self.notifier, lock=self.lock)
        self.scaffolds = ScaffoldService(self.scaffold_repository, self.settings,
                                         notifier=self.notifier)
        self.scheduler = SchedulerService(self.scaffold_repository, self.event_repository,
                                          self.events, self.settings, notifier=self.notifier)


# ---------------------------------------------------------------------------
# CLI output
# ---------------------------------------------------------------------------

_STATUS_COLOURS = {
    'created': Fore.WHITE,
    'announced': Fore.CYAN,
    'finalized': Fore.GREEN,
    'cancelled': Fore.RED,
}


def print_report(report) -> None:
    print(f"\n{Fore.CYAN}{Style.BRIGHT}🔍 Event check")
    print(f"{Fore.WHITE}{'='*40}")
    print(f"{Fore.YELLOW}Created:   {Fore.WHITE}{report.created}")
    print(f"{Fore.YELLOW}Announced: {Fore.WHITE}{report.announced}")
    print(f"{Fore.YELLOW}Reminded:  {Fore.WHITE}{report.reminded}")
    print(f"{Fore.YELLOW}Cancelled: {Fore.WHITE}{report.cancelled}")
    print(f"{Fore.YELLOW}Skipped:   {Fore.WHITE}{report.skipped}")
    for error in report.errors:
        print(f"{Fore.RED}Error: {error}")


def print_events(core: SquashBot) -> None:
    events = core.events.list_events(include_cancelled=True)
    if not events:
        print(f"{Fore.YELLOW}No events.")
        return
    timezone = core.settings.timezone()
    print(f"\n{Fore.CYAN}{Style.BRIGHT}📅 Events ({timezone})")
    print(f"{Fore.WHITE}{'='*40}")
    for event in events:
        colour = _STATUS_COLOURS.get(event.status, Fore.WHITE)
        players = sum(r.participations for r in core.events.registrations(event.id))
        print(f"{Fore.YELLOW}{event.id} {Fore.WHITE}{format_start(event.start, timezone)} "
              f"{colour}{event.status:<10}{Fore.WHITE} courts: {event.courts}  players: {players}")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='SquashBot - squash session scheduler for Discord',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 squashbot.py                   # Run the Discord bot and the HTTP API
  python3 squashbot.py --no-api          # Run the Discord bot only
  python3 squashbot.py --init-db         # Create database tables and exit
  python3 squashbot.py --check-events    # Run one scheduler pass and exit
  python3 squashbot.py --list-events     # Show events and exit
        """
    )

    parser.add_argument(
        '--config', '-c',
        default='config.json',
        help='Path to config file (default: config.json)'
    )
    parser.add_argument(
        '--log-level',
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging verbosity (default: INFO)'
    )
    parser.add_argument(
        '--log-file',
        default='logs/squashbot.log',
        help='Rotating log file; pass an empty string to disable'
    )
    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Create database tables and exit'
    )
    parser.add_argument(
        '--check-events',
        action='store_true',
        help='Run one scheduler pass (create, announce, remind, cancel) and exit'
    )
    parser.add_argument(
        '--list-events',
        action='store_true',
        help='List events and exit'
    )
    parser.add_argument(
        '--no-api',
        action='store_true',
        help='Do not start the HTTP API next to the bot'
    )

    args = parser.parse_args()
    setup_logging(args.log_level, args.log_file or None)

    config = load_config(args.config)
    core = SquashBot(config)

    if args.init_db:
        print(f"{Fore.GREEN}Database ready at {config['database_url']}")
        return

    if args.check_events:
        print_report(core.scheduler.tick())
        return

    if args.list_events:
        print_events(core)
        return

    token = config.get('discord_bot_token')
    if not token:
        print(f"{Fore.RED}Error: discord_bot_token not found in config.json")
        print(f"{Fore.YELLOW}Set it in config.json or the DISCORD_BOT_TOKEN environment variable")
        sys.exit(1)

    if not args.no_api:
        if config.get('api_key'):
            from api_server import start_api_thread
            start_api_thread(core.scheduler, config['api_key'], port=config['api_port'])
        else:
            print(f"{Fore.YELLOW}api_key not set, HTTP API disabled")

    from discord_bot import run_bot
    run_bot(token, config, core)


if __name__ == '__main__':
    main()
