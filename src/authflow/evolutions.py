"""
Schema evolutions for authflow data sources.

An evolution is one numbered SQL file under ``<app_path>/evolutions/<db>/``:

    # --- !Ups
    CREATE TABLE user (...);

    # --- !Downs
    DROP TABLE user;

Applied revisions are recorded in the ``schema_evolutions`` table together
with the scripts that were run, so a changed file is detected by hash and
reverted with the downs that were stored at apply time.

Statements are separated by ``;``. Use ``;;`` for a literal semicolon.
"""
import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence, Union

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

EVOLUTIONS_TABLE = 'schema_evolutions'
EVOLUTIONS_DIRNAME = 'evolutions'

STATE_APPLIED = 'applied'
STATE_APPLYING_UP = 'applying_up'
STATE_APPLYING_DOWN = 'applying_down'

UPS_MARKER = re.compile(r'^\s*#.*!ups\b', re.IGNORECASE)
DOWNS_MARKER = re.compile(r'^\s*#.*!downs\b', re.IGNORECASE)
STATEMENT_SEPARATOR = re.compile(r'(?<!;);(?!;)')

CREATE_EVOLUTIONS_TABLE = f"""
CREATE TABLE IF NOT EXISTS {EVOLUTIONS_TABLE} (
    id INTEGER NOT NULL PRIMARY KEY,
    hash VARCHAR(255) NOT NULL,
    applied_at TIMESTAMP NOT NULL,
    apply_script TEXT,
    revert_script TEXT,
    state VARCHAR(255),
    last_problem TEXT
)
"""


class EvolutionError(Exception):
    """Base class for evolution failures."""
    pass


class InvalidDatabaseRevision(EvolutionError):
    """The data source lags the revision the application expects."""

    def __init__(self, db_name: str, script: Sequence['ScriptAction'] = ()):
        self.db_name = db_name
        self.script = list(script)
        super().__init__(
            f"Database '{db_name}' needs evolution! "
            f"[{len(self.script)} pending script action(s) must be run on your database.]"
        )


class InconsistentDatabase(EvolutionError):
    """A previous evolution stopped half-way; fix the schema and resolve it."""

    def __init__(self, db_name: str, revision: int, error: str):
        self.db_name = db_name
        self.revision = revision
        self.error = error
        super().__init__(
            f"Database '{db_name}' is in an inconsistent state at revision {revision}: {error}"
        )


class Evolution(NamedTuple):
    """One revision: the SQL to apply it and the SQL to revert it."""
    revision: int
    ups: str = ''
    downs: str = ''

    @property
    def hash(self) -> str:
        return hashlib.sha1((self.downs.strip() + self.ups.strip()).encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class UpScript:
    evolution: Evolution

    @property
    def revision(self) -> int:
        return self.evolution.revision

    @property
    def sql(self) -> str:
        return self.evolution.ups

    @property
    def statements(self) -> List[str]:
        return split_statements(self.evolution.ups)


@dataclass(frozen=True)
class DownScript:
    evolution: Evolution

    @property
    def revision(self) -> int:
        return self.evolution.revision

    @property
    def sql(self) -> str:
        return self.evolution.downs

    @property
    def statements(self) -> List[str]:
        return split_statements(self.evolution.downs)


ScriptAction = Union[UpScript, DownScript]


def split_statements(sql: str) -> List[str]:
    """Split a script into statements on single semicolons."""
    statements = []
    for part in STATEMENT_SEPARATOR.split(sql):
        statement = part.replace(';;', ';').strip()
        if statement:
            statements.append(statement)
    return statements


def parse_evolution(revision: int, content: str) -> Evolution:
    """Parse the text of one evolution file into its ups and downs."""
    ups: list[str] = []
    downs: list[str] = []
    section: Optional[list[str]] = None
    for line in content.splitlines():
        if UPS_MARKER.match(line):
            section = ups
            continue
        if DOWNS_MARKER.match(line):
            section = downs
            continue
        if section is not None:
            section.append(line)
    return Evolution(revision, '\n'.join(ups).strip(), '\n'.join(downs).strip())


def evolutions_directory(app_path, db_name: str) -> Path:
    return Path(app_path) / EVOLUTIONS_DIRNAME / db_name


def application_evolutions(app_path, db_name: str) -> List[Evolution]:
    """
    Read the evolutions shipped with the application, newest first.

    Revisions are read from 1.sql upwards and stop at the first gap.
    """
    directory = evolutions_directory(app_path, db_name)
    evolutions = []
    revision = 1
    while True:
        path = directory / f'{revision}.sql'
        if not path.is_file():
            break
        evolutions.append(parse_evolution(revision, path.read_text(encoding='utf-8')))
        revision += 1
    logger.debug(f"Found {len(evolutions)} evolution(s) for '{db_name}' in {directory}")
    return list(reversed(evolutions))


def ensure_evolutions_table(connection: Connection) -> None:
    connection.execute(text(CREATE_EVOLUTIONS_TABLE))


def database_evolutions(connection: Connection, db_name: str) -> List[Evolution]:
    """
    Read the evolutions recorded in the data source, newest first.

    Raises:
        InconsistentDatabase: if a revision was left half-applied
    """
    ensure_evolutions_table(connection)
    rows = connection.execute(text(
        f"SELECT id, apply_script, revert_script, state, last_problem "
        f"FROM {EVOLUTIONS_TABLE} ORDER BY id DESC"
    )).fetchall()

    evolutions = []
    for row in rows:
        if row.state in (STATE_APPLYING_UP, STATE_APPLYING_DOWN):
            raise InconsistentDatabase(db_name, row.id, row.last_problem or f"left in state {row.state}")
        evolutions.append(Evolution(row.id, row.apply_script or '', row.revert_script or ''))
    return evolutions


def plan_script(database: Sequence[Evolution], application: Sequence[Evolution]) -> List[ScriptAction]:
    """
    Compute the actions that bring ``database`` to ``application``.

    Both sequences are newest first. Revisions the application no longer
    knows, and revisions whose content changed, are reverted newest first;
    then the missing or changed revisions are applied oldest first.
    """
    app_head = application[0].revision if application else None
    db_head = database[0].revision if database else None

    downs = []
    db_index = 0
    while db_index < len(database) and (app_head is None or database[db_index].revision > app_head):
        downs.append(database[db_index])
        db_index += 1

    ups = []
    app_index = 0
    while app_index < len(application) and (db_head is None or application[app_index].revision > db_head):
        ups.append(application[app_index])
        app_index += 1

    for down, up in zip(database[db_index:], application[app_index:]):
        if down.hash == up.hash:
            break
        downs.append(down)
        ups.append(up)

    return [DownScript(e) for e in downs] + [UpScript(e) for e in reversed(ups)]


def evolution_script(engine: Engine, app_path, db_name: str) -> List[ScriptAction]:
    """Return the pending script set for one data source."""
    application = application_evolutions(app_path, db_name)
    with engine.begin() as connection:
        database = database_evolutions(connection, db_name)
    return plan_script(database, application)


def describe_script(script: Sequence[ScriptAction]) -> str:
    """Render a script set as SQL text for logs and the CLI."""
    chunks = []
    for action in script:
        direction = 'Ups' if isinstance(action, UpScript) else 'Downs'
        chunks.append(f"# --- Rev:{action.revision},{direction} - {action.evolution.hash[:7]}\n{action.sql}")
    return '\n\n'.join(chunks)


def check_evolutions(engine: Engine, app_path, db_name: str) -> None:
    """
    Verify the data source is at the application's revision.

    Raises:
        InvalidDatabaseRevision: if any script action is pending
    """
    script = evolution_script(engine, app_path, db_name)
    if script:
        raise InvalidDatabaseRevision(db_name, script)


def apply_script(engine: Engine, db_name: str, script: Sequence[ScriptAction]) -> int:
    """
    Apply a script set in order.

    Each action is bracketed by state changes in the evolutions table so an
    interrupted run is detected on the next check.

    Returns:
        Number of actions applied
    """
    for action in script:
        is_up = isinstance(action, UpScript)
        evolution = action.evolution

        with engine.begin() as connection:
            ensure_evolutions_table(connection)
            if is_up:
                connection.execute(text(
                    f"INSERT INTO {EVOLUTIONS_TABLE} "
                    f"(id, hash, applied_at, apply_script, revert_script, state, last_problem) "
                    f"VALUES (:id, :hash, :applied_at, :ups, :downs, :state, '')"
                ), {
                    'id': evolution.revision,
                    'hash': evolution.hash,
                    'applied_at': datetime.now(timezone.utc),
                    'ups': evolution.ups,
                    'downs': evolution.downs,
                    'state': STATE_APPLYING_UP,
                })
            else:
                connection.execute(text(
                    f"UPDATE {EVOLUTIONS_TABLE} SET state = :state WHERE id = :id"
                ), {'state': STATE_APPLYING_DOWN, 'id': evolution.revision})

        try:
            with engine.begin() as connection:
                for statement in action.statements:
                    connection.exec_driver_sql(statement)
        except SQLAlchemyError as e:
            problem = str(e.orig) if getattr(e, 'orig', None) is not None else str(e)
            with engine.begin() as connection:
                connection.execute(text(
                    f"UPDATE {EVOLUTIONS_TABLE} SET last_problem = :problem WHERE id = :id"
                ), {'problem': problem, 'id': evolution.revision})
            logger.error(f"Evolution {evolution.revision} failed on '{db_name}': {problem}")
            raise InconsistentDatabase(db_name, evolution.revision, problem) from e

        with engine.begin() as connection:
            if is_up:
                connection.execute(text(
                    f"UPDATE {EVOLUTIONS_TABLE} SET state = :state WHERE id = :id"
                ), {'state': STATE_APPLIED, 'id': evolution.revision})
            else:
                connection.execute(text(
                    f"DELETE FROM {EVOLUTIONS_TABLE} WHERE id = :id"
                ), {'id': evolution.revision})

        logger.info(f"Evolution {evolution.revision} {'applied to' if is_up else 'reverted from'} '{db_name}'")

    return len(script)


def resolve(engine: Engine, db_name: str, revision: int) -> None:
    """Mark a half-applied revision as resolved after a manual fix."""
    with engine.begin() as connection:
        ensure_evolutions_table(connection)
        connection.execute(text(
            f"UPDATE {EVOLUTIONS_TABLE} SET state = :applied, last_problem = '' "
            f"WHERE id = :id AND state = :applying_up"
        ), {'applied': STATE_APPLIED, 'applying_up': STATE_APPLYING_UP, 'id': revision})
        connection.execute(text(
            f"DELETE FROM {EVOLUTIONS_TABLE} WHERE id = :id AND state = :applying_down"
        ), {'applying_down': STATE_APPLYING_DOWN, 'id': revision})
    logger.info(f"Evolution {revision} on '{db_name}' marked as resolved")
