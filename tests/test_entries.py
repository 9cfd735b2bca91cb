from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from conftest import write_media
from kosakata.config import AppConfig
from kosakata.services.entries import EntryService, TopicService, VocabularyInput
from kosakata.services.errors import NotFoundError, ValidationFailure
from kosakata.services.storage import ContentRepository
from kosakata.services.uploads import StoredUpload, UploadBatch


def _batch(config: AppConfig, files: Dict[str, List[str]]) -> UploadBatch:
    batch = UploadBatch(root=config.uploads_root)
    for field_name, relative_paths in files.items():
        for relative_path in relative_paths:
            path = write_media(config, relative_path)
            batch.add(
                StoredUpload(
                    field=field_name,
                    original_name=Path(relative_path).name,
                    content_type="application/octet-stream",
                    size=path.stat().st_size,
                    path=path,
                    relative_path=relative_path,
                )
            )
    return batch


def _services(config: AppConfig):
    repository = ContentRepository(config)
    return (
        repository,
        TopicService(repository, uploads_root=config.uploads_root),
        EntryService(repository, uploads_root=config.uploads_root),
    )


def _create_cat_entry(config: AppConfig, entries: EntryService, topic_id: int):
    batch = _batch(
        config,
        {
            "entryImage": ["images/entries/cat.png"],
            "audioFiles": ["audio/entries/id.mp3", "audio/entries/su.mp3", "audio/entries/en.mp3"],
        },
    )
    return entries.create_entry(
        topic_id,
        [
            VocabularyInput("kucing", "id", 0),
            VocabularyInput("ucing", "su", 1),
            VocabularyInput("cat", "en", 2),
        ],
        batch,
    )


def test_create_entry_links_vocabularies_as_clique(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")

    entry = _create_cat_entry(temp_config, entries, topic.id)

    assert entry.topic_id == topic.id
    assert entry.image_path == "images/entries/cat.png"
    vocabularies = entries.vocabularies_for(entry)
    assert [item.vocab for item in vocabularies] == ["kucing", "ucing", "cat"]
    assert [item.audio_path for item in vocabularies] == [
        "audio/entries/id.mp3",
        "audio/entries/su.mp3",
        "audio/entries/en.mp3",
    ]
    ids = {item.id for item in vocabularies}
    for item in vocabularies:
        assert set(item.translation_ids) == ids - {item.id}
        assert len(item.translation_ids) == 2


def test_create_entry_failure_rolls_back_and_removes_uploads(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    batch = _batch(
        temp_config,
        {
            "entryImage": ["images/entries/cat.png"],
            "audioFiles": ["audio/entries/id.mp3", "audio/entries/xx.mp3"],
        },
    )

    with pytest.raises(ValidationFailure) as excinfo:
        entries.create_entry(
            topic.id,
            [VocabularyInput("kucing", "id", 0), VocabularyInput("kat", "xx", 1)],
            batch,
        )

    assert "xx" in str(excinfo.value)
    assert all(not path.exists() for path in batch.paths())
    assert entries.list_entries(topic.id) == []
    with repository.transaction() as connection:
        (orphans,) = connection.execute("SELECT COUNT(*) FROM vocabularies").fetchone()
    assert orphans == 0


@pytest.mark.parametrize(
    "files, vocabularies, message",
    [
        ({"audioFiles": ["audio/entries/a.mp3"]}, [VocabularyInput("a", "id", 0)], "image"),
        ({"entryImage": ["images/entries/a.png"]}, [], "At least one"),
        ({"entryImage": ["images/entries/a.png"]}, [VocabularyInput("a", "id", 0)], "audio"),
    ],
)
def test_create_entry_validates_inputs(temp_config, files, vocabularies, message) -> None:
    _, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    batch = _batch(temp_config, files)

    with pytest.raises(ValidationFailure) as excinfo:
        entries.create_entry(topic.id, vocabularies, batch)

    assert message in str(excinfo.value)
    assert all(not path.exists() for path in batch.paths())


def test_create_entry_in_missing_topic_cleans_uploads(temp_config: AppConfig) -> None:
    _, _, entries = _services(temp_config)
    batch = _batch(
        temp_config,
        {"entryImage": ["images/entries/a.png"], "audioFiles": ["audio/entries/a.mp3"]},
    )

    with pytest.raises(NotFoundError):
        entries.create_entry(42, [VocabularyInput("a", "id", 0)], batch)

    assert all(not path.exists() for path in batch.paths())


def test_update_entry_replaces_translations_and_drops_removed(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    batch = _batch(
        temp_config,
        {
            "entryImage": ["images/entries/cat.png"],
            "audioFiles": ["audio/entries/a.mp3", "audio/entries/b.mp3"],
        },
    )
    entry = entries.create_entry(
        topic.id,
        [VocabularyInput("kucing", "id", 0), VocabularyInput("ucing", "su", 1)],
        batch,
    )
    a_id, b_id = entry.vocabulary_ids

    update_batch = _batch(
        temp_config,
        {
            "entryImage": ["images/entries/cat-2.png"],
            "audioFiles": ["audio/entries/a-2.mp3", "audio/entries/c.mp3"],
        },
    )
    updated = entries.update_entry(
        entry.id,
        [
            VocabularyInput("kucing besar", new_audio_index=0, id=a_id),
            VocabularyInput("cat", "en", 1),
            VocabularyInput("ghost", id=9999),
        ],
        update_batch,
    )

    vocabularies = entries.vocabularies_for(updated)
    c_id = vocabularies[1].id
    assert updated.vocabulary_ids == [a_id, c_id]
    assert updated.image_path == "images/entries/cat-2.png"
    assert vocabularies[0].vocab == "kucing besar"
    assert vocabularies[0].audio_path == "audio/entries/a-2.mp3"
    assert vocabularies[0].translation_ids == [c_id]
    assert vocabularies[1].translation_ids == [a_id]
    assert repository.get_vocabulary(b_id) is None

    uploads = temp_config.uploads_root
    assert not (uploads / "images/entries/cat.png").exists()
    assert not (uploads / "audio/entries/a.mp3").exists()
    assert not (uploads / "audio/entries/b.mp3").exists()
    assert (uploads / "audio/entries/a-2.mp3").exists()
    assert (uploads / "audio/entries/c.mp3").exists()


def test_update_failure_keeps_previous_state(temp_config: AppConfig) -> None:
    _, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    entry = _create_cat_entry(temp_config, entries, topic.id)
    before = [(item.id, item.vocab, item.audio_path) for item in entries.vocabularies_for(entry)]

    update_batch = _batch(temp_config, {"entryImage": ["images/entries/other.png"]})
    with pytest.raises(ValidationFailure):
        entries.update_entry(
            entry.id,
            [
                VocabularyInput("renamed", id=entry.vocabulary_ids[0]),
                VocabularyInput("new", "en", new_audio_index=3),
            ],
            update_batch,
        )

    reloaded = entries.get_entry(entry.id)
    assert reloaded.image_path == "images/entries/cat.png"
    assert [(item.id, item.vocab, item.audio_path) for item in entries.vocabularies_for(reloaded)] == before
    assert not (temp_config.uploads_root / "images/entries/other.png").exists()
    assert (temp_config.uploads_root / "images/entries/cat.png").exists()


def test_update_missing_entry_raises_not_found(temp_config: AppConfig) -> None:
    _, _, entries = _services(temp_config)
    batch = _batch(temp_config, {"entryImage": ["images/entries/x.png"]})

    with pytest.raises(NotFoundError):
        entries.update_entry(404, [], batch)
    assert not (temp_config.uploads_root / "images/entries/x.png").exists()


def test_delete_entry_removes_vocabularies_and_files(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    entry = _create_cat_entry(temp_config, entries, topic.id)

    removed = entries.delete_entry(entry.id)

    assert removed == 4
    assert entries.list_entries(topic.id) == []
    assert repository.get_vocabularies(entry.vocabulary_ids) == []
    assert not any(temp_config.uploads_root.rglob("*.mp3"))
    with pytest.raises(NotFoundError):
        entries.delete_entry(entry.id)


def test_delete_topic_cascades_to_entries_and_media(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    entry = _create_cat_entry(temp_config, entries, topic.id)
    untouched = write_media(temp_config, "images/entries/keep.png")

    removed = topics.delete_topic(topic.id)

    assert removed == 4
    assert repository.get_entry(entry.id) is None
    assert repository.get_vocabularies(entry.vocabulary_ids) == []
    assert untouched.exists()
    with pytest.raises(NotFoundError):
        topics.get_topic(topic.id)


def test_topic_name_is_required(temp_config: AppConfig) -> None:
    _, topics, _ = _services(temp_config)

    with pytest.raises(ValidationFailure):
        topics.create_topic("   ")


def test_duplicate_audio_index_is_rejected(temp_config: AppConfig) -> None:
    _, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    batch = _batch(
        temp_config,
        {"entryImage": ["images/entries/cat.png"], "audioFiles": ["audio/entries/shared.mp3"]},
    )

    with pytest.raises(ValidationFailure) as excinfo:
        entries.create_entry(
            topic.id,
            [VocabularyInput("kucing", "id", 0), VocabularyInput("ucing", "su", 0)],
            batch,
        )

    assert "more than one vocabulary" in str(excinfo.value)
    assert all(not path.exists() for path in batch.paths())
    assert entries.list_entries(topic.id) == []


def test_audio_still_referenced_elsewhere_survives_removal(temp_config: AppConfig) -> None:
    repository, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    entry = _create_cat_entry(temp_config, entries, topic.id)
    id_vocab, su_vocab, en_vocab = entries.vocabularies_for(entry)
    repository.update_vocabulary(en_vocab.id, audio_path=id_vocab.audio_path)
    shared = temp_config.uploads_root / id_vocab.audio_path

    entries.update_entry(
        entry.id,
        [VocabularyInput("ucing", id=su_vocab.id), VocabularyInput("cat", id=en_vocab.id)],
        UploadBatch(root=temp_config.uploads_root),
    )

    assert repository.get_vocabulary(id_vocab.id) is None
    assert shared.exists()
    assert repository.get_vocabulary(en_vocab.id).audio_path == id_vocab.audio_path

    entries.delete_entry(entry.id)
    assert not shared.exists()


def test_unassigned_audio_uploads_are_removed(temp_config: AppConfig) -> None:
    _, topics, entries = _services(temp_config)
    topic = topics.create_topic("Animals")
    uploads = temp_config.uploads_root
    batch = _batch(
        temp_config,
        {
            "entryImage": ["images/entries/cat.png"],
            "audioFiles": ["audio/entries/used.mp3", "audio/entries/spare.mp3"],
        },
    )

    entry = entries.create_entry(topic.id, [VocabularyInput("kucing", "id", 0)], batch)

    assert (uploads / "audio/entries/used.mp3").exists()
    assert not (uploads / "audio/entries/spare.mp3").exists()

    update_batch = _batch(
        temp_config,
        {"audioFiles": ["audio/entries/extra-1.mp3", "audio/entries/extra-2.mp3"]},
    )
    entries.update_entry(
        entry.id,
        [
            VocabularyInput("kucing", id=entry.vocabulary_ids[0]),
            VocabularyInput("cat", "en", 1),
        ],
        update_batch,
    )

    assert not (uploads / "audio/entries/extra-1.mp3").exists()
    assert (uploads / "audio/entries/extra-2.mp3").exists()
    assert (uploads / "audio/entries/used.mp3").exists()
