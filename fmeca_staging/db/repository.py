from __future__ import annotations

import asyncio
import logging
from typing import Any

import psycopg2
from psycopg2.extras import Json, execute_values

from ..models.dataset import Dataset
from ..services.progress import ProgressTracker

logger = logging.getLogger(__name__)

"""PostgreSQL persistence for FMECA datasets.

Tables (per project):
    fmeca_data(project_id, row_index, row_data jsonb)
    fmeca_columns(project_id, column_name, column_order)

save() fully replaces the project's rows and columns (DELETE then INSERT) so
re-saving identical data is a no-op in effect. The caller owns the transaction
boundary: save() commits through the connection passed to FmecaRepository when
one is given, otherwise it leaves COMMIT to the caller.
"""

__all__ = [
    "RepositoryError",
    "FmecaRepository",
]

DEFAULT_PAGE_SIZE = 500

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS fmeca_data (
    project_id text NOT NULL,
    row_index integer NOT NULL,
    row_data jsonb NOT NULL,
    PRIMARY KEY (project_id, row_index)
);
CREATE TABLE IF NOT EXISTS fmeca_columns (
    project_id text NOT NULL,
    column_name text NOT NULL,
    column_order integer NOT NULL,
    PRIMARY KEY (project_id, column_order)
);
"""


class RepositoryError(Exception):
    pass


class FmecaRepository:
    """Load/save a project's dataset through a psycopg2 cursor."""

    def __init__(self, cursor: Any, project_id: str, *, connection: Any = None, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.cursor = cursor
        self.project_id = project_id
        self.connection = connection
        self.page_size = page_size

    def ensure_schema(self) -> None:
        try:
            self.cursor.execute(SCHEMA_SQL)
            if self.connection is not None:
                self.connection.commit()
        except psycopg2.Error as e:
            raise RepositoryError(f"failed to create FMECA tables: {e}") from e

    def save(self, dataset: Dataset) -> None:
        """Replace the stored rows and column order with ``dataset``.

        Raises:
            RepositoryError: any database failure (the transaction is rolled back
                when a connection was supplied)
        """
        cur = self.cursor
        cleaned = dataset.cleaned()
        try:
            cur.execute("DELETE FROM fmeca_data WHERE project_id = %s", (self.project_id,))
            cur.execute("DELETE FROM fmeca_columns WHERE project_id = %s", (self.project_id,))

            values = [(self.project_id, i, Json(row)) for i, row in enumerate(cleaned.rows)]
            with ProgressTracker(len(values), description="Saving rows") as progress:
                for start in range(0, len(values), self.page_size):
                    page = values[start:start + self.page_size]
                    execute_values(
                        cur,
                        "INSERT INTO fmeca_data (project_id, row_index, row_data) VALUES %s",
                        page,
                        page_size=self.page_size,
                    )
                    progress.advance(len(page))

            if cleaned.columns:
                execute_values(
                    cur,
                    "INSERT INTO fmeca_columns (project_id, column_name, column_order) VALUES %s",
                    [(self.project_id, name, i) for i, name in enumerate(cleaned.columns)],
                )
            if self.connection is not None:
                self.connection.commit()
        except psycopg2.Error as e:
            if self.connection is not None:
                self.connection.rollback()
            raise RepositoryError(f"failed to save FMECA data: {e}") from e
        logger.info(f"saved project={self.project_id} rows={len(cleaned.rows)} columns={len(cleaned.columns)}")

    async def save_async(self, dataset: Dataset) -> None:
        """save() on a worker thread, for use as an async persist callable."""
        await asyncio.to_thread(self.save, dataset)

    def load(self) -> Dataset:
        """Load rows ordered by row_index and columns ordered by column_order.

        When no column order is stored the first row's keys are used.
        """
        cur = self.cursor
        try:
            cur.execute(
                "SELECT row_data FROM fmeca_data WHERE project_id = %s ORDER BY row_index ASC",
                (self.project_id,),
            )
            rows = [dict(r[0]) for r in cur.fetchall()]
            cur.execute(
                "SELECT column_name FROM fmeca_columns WHERE project_id = %s ORDER BY column_order ASC",
                (self.project_id,),
            )
            columns = [r[0] for r in cur.fetchall()]
        except psycopg2.Error as e:
            raise RepositoryError(f"failed to fetch FMECA data: {e}") from e

        if not columns and rows:
            columns = list(rows[0].keys())
        return Dataset(rows=rows, columns=columns)
