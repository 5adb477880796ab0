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

import datetime
import uuid

import pytest
import sqlalchemy
from sqlalchemy import exc

from artifact_trust._store import db
from artifact_trust._store import tables


def _policy_row(tenant_id, repository_id, updated_at):
    return tables.RepositoryPolicyRow(
        tenant_id=tenant_id,
        repository_id=repository_id,
        signature_policy="optional",
        signature_verification_enabled=False,
        cosign_enabled=False,
        pgp_enabled=False,
        sigstore_enabled=False,
        updated_at=updated_at,
    )


class TestUTCDateTime:
    def test_round_trip_normalizes_to_utc(self, session_factory):
        tenant_id, repository_id = uuid.uuid4(), uuid.uuid4()
        paris = datetime.timezone(datetime.timedelta(hours=2))
        stored = datetime.datetime(2025, 6, 1, 14, 0, tzinfo=paris)

        with session_factory.begin() as session:
            session.add(_policy_row(tenant_id, repository_id, stored))

        with session_factory() as session:
            row = session.scalars(sqlalchemy.select(tables.RepositoryPolicyRow))
            updated_at = row.one().updated_at

        assert updated_at == stored
        assert updated_at.tzinfo == datetime.timezone.utc
        assert updated_at.hour == 12

    def test_rejects_naive_datetimes(self, session_factory):
        row = _policy_row(
            uuid.uuid4(), uuid.uuid4(), datetime.datetime(2025, 6, 1)
        )

        with pytest.raises(exc.StatementError, match="Naive datetime"):
            with session_factory.begin() as session:
                session.add(row)


class TestSchema:
    def test_policy_is_unique_per_repository(self, session_factory):
        tenant_id, repository_id = uuid.uuid4(), uuid.uuid4()
        now = datetime.datetime.now(datetime.timezone.utc)

        with session_factory.begin() as session:
            session.add(_policy_row(tenant_id, repository_id, now))

        with pytest.raises(exc.IntegrityError):
            with session_factory.begin() as session:
                session.add(_policy_row(tenant_id, repository_id, now))

    def test_tables_created(self, session_factory):
        engine = session_factory.kw["bind"]

        assert set(sqlalchemy.inspect(engine).get_table_names()) == {
            "artifact_signatures",
            "public_keys",
            "signature_verification_logs",
            "artifact_integrity",
            "repository_signature_policies",
        }


class TestCreateSessionFactory:
    def test_existing_engine_without_tables(self):
        engine = sqlalchemy.create_engine("sqlite://")

        session_factory = db.create_session_factory(
            engine, create_tables=False
        )

        assert session_factory.kw["bind"] is engine
        assert sqlalchemy.inspect(engine).get_table_names() == []

    def test_file_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'trust.db'}"

        db.create_session_factory(url)

        assert (tmp_path / "trust.db").exists()
