# tests/unit/test_document_cache.py
"""
针对 `t3lang.document_cache` 模块的单元测试。

验证加载短路、并发加载去重、分组加载的失败隔离，以及分组级 LRU 淘汰。
"""

import asyncio

import pytest

from t3lang.document_cache import DocumentCache, build_file_data
from t3lang.events import EventBus, FileLoadFailed, GroupEvicted
from t3lang.exceptions import GroupNotFoundError, LoadError
from t3lang.types import FileMetadata, TranslationGroup
from tests.helpers.fakes import EventRecorder, InMemoryFileSystem, JsonCodec, dump, make_document


def make_group(index: int) -> TranslationGroup:
    directory = f"/ws/g{index}"
    source = FileMetadata(
        path=f"{directory}/labels.xlf",
        name="labels.xlf",
        language="default",
        base_name="labels",
        directory=directory,
    )
    german = FileMetadata(
        path=f"{directory}/de.labels.xlf",
        name="de.labels.xlf",
        language="de",
        base_name="labels",
        directory=directory,
    )
    return TranslationGroup(
        id=f"{directory}/labels",
        base_name="labels",
        directory=directory,
        files={"default": source, "de": german},
        source_file=source,
    )


@pytest.fixture
def groups() -> list[TranslationGroup]:
    return [make_group(i) for i in range(11)]


@pytest.fixture
def fs(groups: list[TranslationGroup]) -> InMemoryFileSystem:
    files = {}
    for group in groups:
        for path in group.paths():
            files[path] = dump(make_document([("a", "Hello", "")]))
    return InMemoryFileSystem(files)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def cache(
    fs: InMemoryFileSystem, groups: list[TranslationGroup], bus: EventBus
) -> DocumentCache:
    cache = DocumentCache(fs, JsonCodec(), max_groups=10, bus=bus)
    cache.register_groups(groups)
    return cache


def test_build_file_data_uses_naming_convention() -> None:
    doc = make_document([("a", "Hello", None)], source_language="en", target_language="de")

    german = build_file_data("/ws/de.labels.xlf", doc)
    assert (german.language, german.base_name, german.is_source_only) == ("de", "labels", False)
    assert german.target_language == "de"
    assert german.units[0].target == ""

    source = build_file_data("/ws/labels.xlf", doc)
    assert (source.language, source.is_source_only, source.target_language) == (
        "default",
        True,
        "",
    )


@pytest.mark.asyncio
async def test_load_file_short_circuits_when_cached(
    cache: DocumentCache, fs: InMemoryFileSystem
) -> None:
    """测试已缓存的文件不会被重新读取，只有 force=True 时才会。"""
    path = "/ws/g0/de.labels.xlf"
    first = await cache.load_file(path)
    second = await cache.load_file(path)

    assert first is second
    assert fs.reads.count(path) == 1

    await cache.load_file(path, force=True)
    assert fs.reads.count(path) == 2


@pytest.mark.asyncio
async def test_concurrent_loads_share_one_read(
    cache: DocumentCache, fs: InMemoryFileSystem
) -> None:
    path = "/ws/g0/de.labels.xlf"
    a, b = await asyncio.gather(cache.load_file(path), cache.load_file(path))

    assert a is b
    assert fs.reads.count(path) == 1


@pytest.mark.asyncio
async def test_group_load_isolates_failures(
    cache: DocumentCache, fs: InMemoryFileSystem, bus: EventBus
) -> None:
    """测试一个文件解析失败不会影响同组其他文件，且失败只报告一次。"""
    recorder = EventRecorder(bus)
    broken = "/ws/g0/de.labels.xlf"
    fs.files[broken] = "{not json"

    report = await cache.load_group("/ws/g0/labels")

    assert report.loaded == ["/ws/g0/labels.xlf"]
    assert list(report.failed) == [broken]
    assert cache.get(broken) is None
    assert cache.get("/ws/g0/labels.xlf") is not None
    assert cache.is_group_loaded("/ws/g0/labels")

    with pytest.raises(LoadError):
        await cache.load_file(broken)
    assert len(recorder.of_type(FileLoadFailed)) == 1


@pytest.mark.asyncio
async def test_unreadable_file_raises_load_error(
    cache: DocumentCache, fs: InMemoryFileSystem
) -> None:
    fs.fail_reads.add("/ws/g0/labels.xlf")
    with pytest.raises(LoadError) as exc_info:
        await cache.load_file("/ws/g0/labels.xlf")
    assert exc_info.value.path == "/ws/g0/labels.xlf"


@pytest.mark.asyncio
async def test_unknown_group_raises(cache: DocumentCache) -> None:
    with pytest.raises(GroupNotFoundError):
        await cache.load_group("/ws/nope/labels")


@pytest.mark.asyncio
async def test_lru_evicts_least_recently_loaded_group(
    cache: DocumentCache, groups: list[TranslationGroup], bus: EventBus
) -> None:
    """测试加载第 11 个分组时淘汰最早加载的分组，并删除其所有文件的缓存。"""
    recorder = EventRecorder(bus)
    for group in groups:
        await cache.load_group(group.id)

    assert cache.loaded_groups == [g.id for g in groups[1:]]
    for path in groups[0].paths():
        assert cache.get(path) is None
    for group in groups[1:]:
        for path in group.paths():
            assert cache.get(path) is not None
    assert [e.group_id for e in recorder.of_type(GroupEvicted)] == [groups[0].id]


@pytest.mark.asyncio
async def test_touched_group_is_not_evicted(
    cache: DocumentCache, groups: list[TranslationGroup]
) -> None:
    for group in groups[:10]:
        await cache.load_group(group.id)
    await cache.load_group(groups[0].id)
    await cache.load_group(groups[10].id)

    assert groups[0].id in cache.loaded_groups
    assert groups[1].id not in cache.loaded_groups
    assert cache.get(groups[0].paths()[0]) is not None
    assert cache.get(groups[1].paths()[0]) is None


@pytest.mark.asyncio
async def test_pinned_groups_are_skipped(
    cache: DocumentCache, groups: list[TranslationGroup]
) -> None:
    """测试含有未保存文件的分组会被跳过，淘汰顺延到下一个分组。"""
    dirty = {groups[0].paths()[1]}
    cache.is_pinned = lambda path: path in dirty
    for group in groups:
        await cache.load_group(group.id)

    assert groups[0].id in cache.loaded_groups
    assert groups[1].id not in cache.loaded_groups
    assert cache.get(groups[0].paths()[1]) is not None


@pytest.mark.asyncio
async def test_eviction_is_deferred_when_everything_is_pinned(
    cache: DocumentCache, groups: list[TranslationGroup]
) -> None:
    cache.is_pinned = lambda path: True
    for group in groups:
        await cache.load_group(group.id)

    assert len(cache.loaded_groups) == 11

    cache.is_pinned = lambda path: False
    assert cache.evict_old_groups() == [groups[0].id]
    assert len(cache.loaded_groups) == 10


@pytest.mark.asyncio
async def test_add_file_to_group_and_clear(cache: DocumentCache) -> None:
    meta = FileMetadata(
        path="/ws/g0/fr.labels.xlf",
        name="fr.labels.xlf",
        language="fr",
        base_name="labels",
        directory="/ws/g0",
    )
    updated = cache.add_file_to_group("/ws/g0/labels", meta)

    assert "fr" in updated.files
    assert cache.group_for_path(meta.path) == "/ws/g0/labels"

    await cache.load_group("/ws/g0/labels")
    cache.clear()
    assert cache.loaded_groups == []
    assert cache.cached_paths() == []
    assert cache.groups == []
