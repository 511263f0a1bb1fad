"""Shared fixtures: a fresh key, an in-memory store and seeded users."""
import os

import pytest
import pytest_asyncio

from hashenv import HashEnv, HashEnvConfig, MemoryStore
from hashenv.models import User
from hashenv.utils import new_id


@pytest.fixture
def config():
    """Config with a random key and no backoff delay."""
    return HashEnvConfig.from_key(os.urandom(32), version_retry_delay=0)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def service(config, store):
    return HashEnv(config, store)


async def _make_user(store, name):
    user = User(id=new_id(), name=name, email=f"{name.lower()}@example.com")
    await store.insert_user(user)
    return user


@pytest_asyncio.fixture
async def owner(store):
    return await _make_user(store, "Alice")


@pytest_asyncio.fixture
async def reader(store):
    return await _make_user(store, "Bob")


@pytest_asyncio.fixture
async def writer(store):
    return await _make_user(store, "Carol")


@pytest_asyncio.fixture
async def stranger(store):
    return await _make_user(store, "Mallory")


@pytest_asyncio.fixture
async def project(service, owner, reader, writer):
    """Project owned by Alice; Bob may read, Carol may write."""
    created = await service.create_project(owner.id, "Billing API")
    await service.add_member(owner.id, created.id, reader.id, "read")
    return await service.add_member(owner.id, created.id, writer.id, "write")
