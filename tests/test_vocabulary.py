from datetime import datetime

import pytest

from hanziflow.errors import ItemNotFoundError, SetNotFoundError
from hanziflow.models import LocalMasterySuggestion
from hanziflow.vocabulary import VocabularyManager, rows_to_items

FIXED_NOW = datetime(2026, 5, 10, 9, 30)


def write_csv(directory, name, text):
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def vocab_dir(tmp_path):
    directory = tmp_path / "vocabulary"
    directory.mkdir()
    write_csv(
        directory,
        "family_words.csv",
        "Hanzi,Pinyin,Meaning,ExampleSentence\n"
        "妈妈,ma1ma5,mother,我爱妈妈。\n"
        "爸爸,ba4ba5,father,\n"
        "女儿,nv3'er2,daughter,\n"
        ",ge1ge5,older brother,\n",
    )
    write_csv(
        directory,
        "colors.csv",
        "id,hanzi,pinyin,meaning,srsLevel,nextReviewDate,needsReview\n"
        "c1,红,hóng,red,2,2026-05-09,true\n"
        "c2,蓝,lán,blue,,,false\n",
    )
    return directory


@pytest.fixture
def manager(vocab_dir):
    manager = VocabularyManager(str(vocab_dir), now=lambda: FIXED_NOW)
    manager.load_all()
    return manager


def test_loads_every_csv(manager):
    assert [s.id for s in manager.get_sets()] == ["colors", "family_words"]
    assert manager.get_topics() == [
        {"id": "colors", "name": "Colors", "count": 2},
        {"id": "family_words", "name": "Family Words", "count": 3},
    ]


def test_incomplete_rows_are_skipped(manager):
    family = manager.load_set("family_words")
    assert [item.meaning for item in family.items] == [
        "mother",
        "father",
        "daughter",
    ]


def test_pinyin_is_normalized_on_load(manager):
    family = manager.load_set("family_words")
    assert [item.pinyin for item in family.items] == ["māma", "bàba", "nǚ'ér"]
    assert family.items[0].example_sentence == "我爱妈妈。"
    assert family.items[1].example_sentence is None


def test_generated_ids_are_stable(manager):
    family = manager.load_set("family_words")
    assert [item.id for item in family.items] == [
        "family_words-1",
        "family_words-2",
        "family_words-3",
    ]


def test_optional_mastery_columns(manager):
    red, blue = manager.load_set("colors").items
    assert red.id == "c1"
    assert red.srs_level == 2
    assert red.next_review_date == datetime(2026, 5, 9)
    assert red.needs_review is True
    assert blue.srs_level is None
    assert blue.next_review_date is None
    assert blue.needs_review is False


def test_file_missing_columns_is_skipped(vocab_dir):
    write_csv(vocab_dir, "broken.csv", "hanzi,meaning\n好,good\n")
    manager = VocabularyManager(str(vocab_dir))
    manager.load_all()
    with pytest.raises(SetNotFoundError):
        manager.load_set("broken")


def test_demo_set_when_directory_empty(tmp_path):
    directory = tmp_path / "missing"
    manager = VocabularyManager(str(directory))
    manager.load_all()

    assert directory.exists()
    demo = manager.load_set("demo")
    assert len(demo.items) == 6
    assert demo.difficulty == "Easy"


def test_duplicate_ids_keep_first():
    items = rows_to_items(
        "s",
        [
            {"id": "x", "hanzi": "一", "pinyin": "yi1", "meaning": "one"},
            {"id": "x", "hanzi": "二", "pinyin": "er4", "meaning": "two"},
        ],
    )
    assert [(i.id, i.hanzi, i.pinyin) for i in items] == [("x", "一", "yī")]


def test_unknown_set_raises(manager):
    with pytest.raises(SetNotFoundError) as exc:
        manager.load_set("nope")
    assert "nope" in str(exc.value)
    assert isinstance(exc.value, KeyError)


def test_toggle_needs_review(manager):
    toggled = manager.toggle_needs_review("colors", "c2")
    assert toggled.needs_review is True
    assert manager.load_set("colors").get_item("c2").needs_review is True

    manager.toggle_needs_review("colors", "c2")
    assert manager.load_set("colors").get_item("c2").needs_review is False


def test_toggle_unknown_item(manager):
    with pytest.raises(ItemNotFoundError):
        manager.toggle_needs_review("colors", "zzz")
    with pytest.raises(SetNotFoundError):
        manager.toggle_needs_review("zzz", "c1")


def test_save_item_mutation_replaces_item(manager):
    red = manager.load_set("colors").get_item("c1")
    updated = manager.save_item_mutation(
        "colors", red.model_copy(update={"meaning": "crimson"})
    )
    assert updated.get_item("c1").meaning == "crimson"
    assert manager.load_set("colors").get_item("c1").meaning == "crimson"
    assert red.meaning == "red"


def test_apply_suggestion_confirms(manager):
    suggestion = LocalMasterySuggestion(
        set_id="colors",
        item_id="c2",
        srs_level=1,
        next_review_date=datetime(2026, 5, 11),
        needs_review=False,
    )
    record = manager.apply_suggestion(suggestion)

    assert record.confirmed_at == FIXED_NOW
    assert record.srs_level == 1
    item = manager.load_set("colors").get_item("c2")
    assert item.srs_level == 1
    assert item.next_review_date == datetime(2026, 5, 11)


def test_apply_suggestion_unknown_item(manager):
    suggestion = LocalMasterySuggestion(
        set_id="colors",
        item_id="c9",
        srs_level=1,
        next_review_date=FIXED_NOW,
        needs_review=False,
    )
    with pytest.raises(ItemNotFoundError):
        manager.apply_suggestion(suggestion)
