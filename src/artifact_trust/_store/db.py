# Copyright 2025 The Sigstore Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""SQLAlchemy engine and session setup.

```python
session_factory = create_session_factory("postgresql+psycopg2://...")
service = artifact_trust.service.SignatureService(session_factory)
```

In-memory SQLite databases share one connection, so that every session sees
the same tables.
"""

import logging

from sqlalchemy import Engine
from sqlalchemy import create_engine
from sqlalchemy import pool
from sqlalchemy.orm import sessionmaker

from artifact_trust._store import tables


logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:")


def create_session_factory(
    url_or_engine: str | Engine = "sqlite://",
    *,
    echo: bool = False,
    create_tables: bool = True,
) -> sessionmaker:
    """Returns a session factory bound to the database.

    Args:
        url_or_engine: A SQLAlchemy database URL, or an existing engine.
        echo: Log every statement, for debugging.
        create_tables: Create missing tables.
    """
    if isinstance(url_or_engine, Engine):
        engine = url_or_engine
    elif _is_memory_sqlite(url_or_engine):
        engine = create_engine(
            url_or_engine,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=pool.StaticPool,
        )
    else:
        engine = create_engine(url_or_engine, echo=echo)

    if create_tables:
        logger.debug(f"Creating tables on {engine.url}")
        tables.Base.metadata.create_all(engine)

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
