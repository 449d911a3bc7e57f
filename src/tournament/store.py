"""
File-based tournament store: one YAML document per tournament.

Writes go to a temporary file that replaces the document atomically, and
every read-modify-write runs under a per-tournament file lock.
"""
import contextlib
import logging
import os
import re
import uuid
from typing import Dict, Iterator, List, Optional

import yaml
from filelock import FileLock

from .errors import NotFoundError, ValidationError
from .models import Tournament

logger = logging.getLogger(__name__)

TOURNAMENT_ID_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*$')
LOCK_TIMEOUT = 10


def slugify(name: str) -> str:
    """Convert tournament name to filesystem-safe slug."""
    slug = name.lower().strip()
    slug = re.sub(r'[^a-z0-9\s-]', '', slug)
    slug = re.sub(r'[\s-]+', '-', slug)
    slug = slug.strip('-')
    return slug or 'tournament'


def generate_public_code() -> str:
    return uuid.uuid4().hex[:6].upper()


class TournamentStore:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.tournaments_dir = os.path.join(data_dir, 'tournaments')

    def _check_id(self, tournament_id: str) -> str:
        if not isinstance(tournament_id, str) or not TOURNAMENT_ID_PATTERN.match(tournament_id):
            raise NotFoundError(f'Tournament {tournament_id} not found')
        return tournament_id

    def path_for(self, tournament_id: str) -> str:
        return os.path.join(self.tournaments_dir, f'{self._check_id(tournament_id)}.yaml')

    def lock_for(self, tournament_id: str) -> FileLock:
        os.makedirs(self.tournaments_dir, exist_ok=True)
        return FileLock(self.path_for(tournament_id) + '.lock', timeout=LOCK_TIMEOUT)

    def exists(self, tournament_id: str) -> bool:
        try:
            return os.path.exists(self.path_for(tournament_id))
        except NotFoundError:
            return False

    def list_ids(self) -> List[str]:
        if not os.path.isdir(self.tournaments_dir):
            return []
        return sorted(name[:-len('.yaml')] for name in os.listdir(self.tournaments_dir)
                      if name.endswith('.yaml'))

    def load(self, tournament_id: str) -> Tournament:
        """Load a tournament document. Raises NotFoundError when it does not exist."""
        path = self.path_for(tournament_id)
        if not os.path.exists(path):
            raise NotFoundError(f'Tournament {tournament_id} not found')
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        return Tournament.from_dict(data)

    def save(self, tournament: Tournament) -> None:
        path = self.path_for(tournament.tournament_id)
        os.makedirs(self.tournaments_dir, exist_ok=True)
        temp_path = f'{path}.{uuid.uuid4().hex}.tmp'
        try:
            with open(temp_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(tournament.to_dict(), f, default_flow_style=False, sort_keys=False)
            os.replace(temp_path, path)
        finally:
            if os.path.exists(temp_path):
                os.remove(temp_path)

    def create(self, name: str, format_id: Optional[str] = None, settings: Optional[Dict] = None,
               tournament_id: Optional[str] = None) -> Tournament:
        """Create and persist an empty tournament with a unique id."""
        if not name or not str(name).strip():
            raise ValidationError('Tournament name is required')
        base_id = tournament_id or slugify(str(name))
        if not TOURNAMENT_ID_PATTERN.match(base_id):
            raise ValidationError(f'Invalid tournament id {base_id!r}')

        candidate = base_id
        suffix = 2
        while self.exists(candidate):
            candidate = f'{base_id}-{suffix}'
            suffix += 1

        tournament = Tournament(candidate, str(name).strip(), generate_public_code(), format_id,
                                settings=settings)
        with self.lock_for(candidate):
            self.save(tournament)
        logger.info(f'Created tournament {candidate}')
        return tournament

    @contextlib.contextmanager
    def transaction(self, tournament_id: str) -> Iterator[Tournament]:
        """
        Load a tournament under its lock and save it when the block exits
        normally. An exception inside the block discards every change.
        """
        with self.lock_for(tournament_id):
            tournament = self.load(tournament_id)
            yield tournament
            self.save(tournament)
