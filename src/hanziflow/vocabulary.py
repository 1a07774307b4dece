import glob
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .errors import ItemNotFoundError, SetNotFoundError
from .models import (
    AuthoritativeMasteryRecord,
    LocalMasterySuggestion,
    VocabItem,
    VocabSet,
)
from .pinyin import normalize

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("hanzi", "pinyin", "meaning")
OPTIONAL_COLUMNS = {
    "id": "id",
    "examplesentence": "example_sentence",
    "srslevel": "srs_level",
    "nextreviewdate": "next_review_date",
    "needsreview": "needs_review",
}

DEMO_ITEMS = [
    {"hanzi": "你好", "pinyin": "nǐ hǎo", "meaning": "hello"},
    {"hanzi": "谢谢", "pinyin": "xièxie", "meaning": "thank you"},
    {"hanzi": "再见", "pinyin": "zàijiàn", "meaning": "goodbye"},
    {"hanzi": "朋友", "pinyin": "péngyou", "meaning": "friend"},
    {"hanzi": "学生", "pinyin": "xuésheng", "meaning": "student"},
    {"hanzi": "老师", "pinyin": "lǎoshī", "meaning": "teacher"},
]


def _cell(row: Dict[str, Any], column: str) -> Optional[Any]:
    value = row.get(column)
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    return value


def rows_to_items(set_id: str, records: List[Dict[str, Any]]) -> List[VocabItem]:
    """Convert spreadsheet rows into items, skipping incomplete rows."""
    items = []
    seen_ids = set()
    for index, row in enumerate(records):
        required = {column: _cell(row, column) for column in REQUIRED_COLUMNS}
        if any(value is None or not str(value).strip() for value in required.values()):
            logger.warning(f"Skipping incomplete row {index + 2} in {set_id}")
            continue

        data = {column: str(value).strip() for column, value in required.items()}
        data["pinyin"] = normalize(data["pinyin"])
        for column, field in OPTIONAL_COLUMNS.items():
            value = _cell(row, column)
            if value is not None:
                data[field] = value
        if "id" in data:
            data["id"] = str(data["id"])
        if "srs_level" in data:
            data["srs_level"] = int(data["srs_level"])
        if "next_review_date" in data:
            data["next_review_date"] = pd.to_datetime(
                data["next_review_date"]
            ).to_pydatetime()
        if "needs_review" in data:
            data["needs_review"] = str(data["needs_review"]).strip().lower() in (
                "1",
                "true",
                "yes",
            )
        data.setdefault("id", f"{set_id}-{index + 1}")
        if data["id"] in seen_ids:
            logger.warning(f"Skipping duplicate item id {data['id']} in {set_id}")
            continue
        seen_ids.add(data["id"])
        items.append(VocabItem.model_validate(data))
    return items


# --- Service Layer: Vocabulary Management ---
class VocabularyManager:
    """Loads vocabulary sets from CSV files and keeps item mutations in memory."""

    def __init__(self, directory: str, now=datetime.now):
        self.directory = directory
        self.now = now
        self.vocab_sets: Dict[str, VocabSet] = {}

    def load_all(self):
        self.vocab_sets = {}
        if not os.path.exists(self.directory):
            os.makedirs(self.directory)
            logger.warning(f"Created directory {self.directory}. Please add CSV files.")

        csv_files = sorted(glob.glob(os.path.join(self.directory, "*.csv")))
        for file_path in csv_files:
            set_id = os.path.splitext(os.path.basename(file_path))[0]
            try:
                df = pd.read_csv(file_path, encoding="utf-8")
            except Exception as e:
                logger.error(f"Failed to load {file_path}: {e}")
                continue

            df.columns = [str(c).strip().lower() for c in df.columns]
            if not all(column in df.columns for column in REQUIRED_COLUMNS):
                logger.error(f"Skipping {set_id}: Missing columns.")
                continue

            items = rows_to_items(set_id, df.to_dict("records"))
            self.vocab_sets[set_id] = VocabSet(
                id=set_id,
                title=set_id.replace("_", " ").title(),
                items=items,
            )
            logger.info(f"Loaded {len(items)} words from {set_id}")

        if not self.vocab_sets:
            logger.warning("No CSV files found. Loading demo set.")
            self.add_set(
                VocabSet(
                    id="demo",
                    title="Demo",
                    description="Everyday greetings",
                    difficulty="Easy",
                    items=rows_to_items("demo", DEMO_ITEMS),
                )
            )

    def add_set(self, vocab_set: VocabSet) -> VocabSet:
        self.vocab_sets[vocab_set.id] = vocab_set
        return vocab_set

    def get_sets(self) -> List[VocabSet]:
        return sorted(self.vocab_sets.values(), key=lambda s: s.title)

    def get_topics(self) -> List[Dict[str, Any]]:
        return [
            {"id": s.id, "name": s.title, "count": len(s.items)}
            for s in self.get_sets()
        ]

    def load_set(self, set_id: str) -> VocabSet:
        try:
            return self.vocab_sets[set_id]
        except KeyError:
            raise SetNotFoundError(set_id) from None

    def save_item_mutation(self, set_id: str, item: VocabItem) -> VocabSet:
        vocab_set = self.load_set(set_id)
        if vocab_set.get_item(item.id) is None:
            raise ItemNotFoundError(set_id, item.id)
        items = [
            item if existing.id == item.id else existing for existing in vocab_set.items
        ]
        updated = vocab_set.model_copy(update={"items": items})
        self.vocab_sets[set_id] = updated
        return updated

    def toggle_needs_review(self, set_id: str, item_id: str) -> VocabItem:
        item = self.load_set(set_id).get_item(item_id)
        if item is None:
            raise ItemNotFoundError(set_id, item_id)
        toggled = item.model_copy(update={"needs_review": not item.needs_review})
        self.save_item_mutation(set_id, toggled)
        return toggled

    def apply_suggestion(
        self, suggestion: LocalMasterySuggestion
    ) -> AuthoritativeMasteryRecord:
        item = self.load_set(suggestion.set_id).get_item(suggestion.item_id)
        if item is None:
            raise ItemNotFoundError(suggestion.set_id, suggestion.item_id)
        updated = item.model_copy(
            update={
                "srs_level": suggestion.srs_level,
                "next_review_date": suggestion.next_review_date,
                "needs_review": suggestion.needs_review,
            }
        )
        self.save_item_mutation(suggestion.set_id, updated)
        return AuthoritativeMasteryRecord(
            **suggestion.model_dump(), confirmed_at=self.now()
        )
