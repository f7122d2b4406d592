"""Tests for the remote tree walker."""

from __future__ import annotations

import asyncio

import pytest

from repo_sync.core.async_utils import init_semaphore
from repo_sync.core.exceptions import RemoteAPIError
from repo_sync.sync.walker import walk_remote_tree


async def test_empty_repository(fake_client):
    assert await walk_remote_tree(fake_client, "octo", "notes", "main") == []


async def test_walks_nested_directories(fake_client):
    fake_client.put("README.md", "readme")
    fake_client.put("docs/a.md", "a")
    fake_client.put("docs/deep/er/b.md", "b")

    entries = await walk_remote_tree(fake_client, "octo", "notes", "main")

    assert sorted(e.path for e in entries) == [
        "README.md",
        "docs/a.md",
        "docs/deep/er/b.md",
    ]
    assert all(e.type == "file" for e in entries)
    # root, docs, docs/deep, docs/deep/er
    assert fake_client.list_calls == 4


async def test_entries_carry_version_and_handle(fake_client):
    version = fake_client.put("a.txt", "hello")

    (entry,) = await walk_remote_tree(fake_client, "octo", "notes", "main")

    assert entry.version == version
    assert entry.fetch_handle == "fake://main/a.txt"


async def test_walk_from_subdirectory(fake_client):
    fake_client.put("top.txt", "t")
    fake_client.put("sub/inner.txt", "i")

    entries = await walk_remote_tree(
        fake_client, "octo", "notes", "main", root="sub"
    )

    assert [e.path for e in entries] == ["sub/inner.txt"]


async def test_deep_tree_does_not_recurse(fake_client):
    deep = "/".join(f"d{i}" for i in range(200)) + "/leaf.txt"
    fake_client.put(deep, "leaf")

    entries = await walk_remote_tree(fake_client, "octo", "notes", "main")

    assert [e.path for e in entries] == [deep]


async def test_listing_failure_aborts_walk(fake_client):
    fake_client.put("ok/a.txt", "a")
    fake_client.put("broken/b.txt", "b")
    fake_client.fail_list.add("broken")

    with pytest.raises(RemoteAPIError, match="broken"):
        await walk_remote_tree(fake_client, "octo", "notes", "main")


async def test_unknown_branch_propagates(fake_client):
    with pytest.raises(RemoteAPIError):
        await walk_remote_tree(fake_client, "octo", "notes", "nope")


async def test_walk_respects_semaphore(fake_client):
    for i in range(6):
        fake_client.put(f"d{i}/f.txt", "x")
    init_semaphore(2)

    entries = await walk_remote_tree(fake_client, "octo", "notes", "main")

    assert len(entries) == 6


async def test_walk_can_be_cancelled(fake_client):
    fake_client.put("a/b.txt", "b")
    task = asyncio.create_task(
        walk_remote_tree(fake_client, "octo", "notes", "main")
    )
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
