"""Duplicate detection for imported transactions.

Similarity is scored 0-100. An exact match on date, amount, cleaned
description and type scores 100; anything else gets a weighted blend of
date, amount and description closeness plus small bonuses for matching type
and category. Scores are capped at 85 when the dates are more than a day
apart.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from .models import Transaction, parse_date
from .preferences import load_preferences, save_preferences
from .settings import get_setting

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = get_setting('duplicates', 'thresholds', 'high', default=95)
MEDIUM_CONFIDENCE_THRESHOLD = get_setting('duplicates', 'thresholds', 'medium', default=85)
SMART_MODE_THRESHOLD = get_setting('duplicates', 'thresholds', 'smart_mode', default=98)
DIFFERENT_DAY_CAP = get_setting('duplicates', 'max_score_when_dates_differ', default=85)
WEIGHTS: Dict[str, float] = get_setting('duplicates', 'weights', default={
    'date': 35, 'amount': 45, 'description': 15, 'type': 2.5, 'category': 2.5,
})

DATE_TOLERANCE_DAYS = 1
AMOUNT_TOLERANCE = 0.001


@dataclass
class DuplicateCheckResult:
    is_duplicate: bool
    duplicate_transactions: List[Transaction]
    similar_transactions: List[Transaction]
    confidence: int

    @property
    def duplicate_count(self) -> int:
        return len(self.duplicate_transactions)


@dataclass
class DuplicatePair:
    file_transaction: Transaction
    existing_transaction: Transaction
    confidence: int


@dataclass
class InternalDuplicate:
    transaction: Transaction
    duplicate_of: Transaction
    confidence: int


@dataclass
class ImportSummary:
    total_transactions: int
    new_transactions: int
    duplicate_transactions: int
    skipped_transactions: int
    imported_transactions: List[Transaction] = field(default_factory=list)
    duplicates: List[Transaction] = field(default_factory=list)
    duplicate_pairs: List[DuplicatePair] = field(default_factory=list)
    internal_duplicates: List[InternalDuplicate] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clean_description(description: Optional[str]) -> str:
    text = (description or '').lower()
    text = re.sub(r'[^\w\s]', '', text)
    return re.sub(r'\s+', ' ', text).strip()


def date_similarity(first: str, second: str) -> float:
    diff_days = abs((parse_date(first) - parse_date(second)).days)
    if diff_days == 0:
        return 1.0
    if diff_days <= DATE_TOLERANCE_DAYS:
        return 0.8
    if diff_days <= 7:
        return 0.5
    if diff_days <= 30:
        return 0.2
    return 0.0


def amount_similarity(first: float, second: float) -> float:
    if first == second:
        return 1.0
    average = (first + second) / 2
    if average == 0:
        return 0.0
    percent_diff = abs(first - second) / abs(average)
    if percent_diff <= AMOUNT_TOLERANCE:
        return 0.95
    if percent_diff <= 0.05:
        return 0.8
    if percent_diff <= 0.1:
        return 0.5
    return 0.0


def description_similarity(first: Optional[str], second: Optional[str]) -> float:
    if not first or not second:
        return 0.0
    clean_first = clean_description(first)
    clean_second = clean_description(second)
    if clean_first == clean_second:
        return 1.0
    if clean_first in clean_second or clean_second in clean_first:
        return 0.8
    longest = max(len(clean_first), len(clean_second))
    if longest == 0:
        return 1.0
    return (longest - Levenshtein.distance(clean_first, clean_second)) / longest


def is_exact_match(first: Transaction, second: Transaction) -> bool:
    return (
        first.date == second.date
        and first.amount == second.amount
        and clean_description(first.description) == clean_description(second.description)
        and first.type == second.type
    )


def calculate_similarity(first: Transaction, second: Transaction) -> int:
    if is_exact_match(first, second):
        return 100

    score = 0.0
    score += date_similarity(first.date, second.date) * WEIGHTS['date']
    score += amount_similarity(first.amount, second.amount) * WEIGHTS['amount']
    score += description_similarity(first.description, second.description) * WEIGHTS['description']
    if first.type == second.type:
        score += WEIGHTS['type']
    if first.category == second.category:
        score += WEIGHTS['category']

    max_score = sum(WEIGHTS.values())
    final_score = _round_half_up(score / max_score * 100)
    if abs((parse_date(first.date) - parse_date(second.date)).days) > DATE_TOLERANCE_DAYS:
        return min(final_score, DIFFERENT_DAY_CAP)
    return final_score


def check_duplicate(transaction: Transaction, existing: List[Transaction]) -> DuplicateCheckResult:
    duplicates: List[Transaction] = []
    similar: List[Transaction] = []
    max_confidence = 0
    for candidate in existing:
        confidence = calculate_similarity(transaction, candidate)
        if confidence >= HIGH_CONFIDENCE_THRESHOLD:
            duplicates.append(candidate)
            max_confidence = max(max_confidence, confidence)
        elif confidence >= MEDIUM_CONFIDENCE_THRESHOLD:
            similar.append(candidate)
    return DuplicateCheckResult(
        is_duplicate=bool(duplicates),
        duplicate_transactions=duplicates,
        similar_transactions=similar,
        confidence=max_confidence,
    )


def _best_match(transaction: Transaction, existing: List[Transaction]) -> Tuple[Optional[Transaction], int]:
    best: Optional[Transaction] = None
    best_confidence = 0
    for candidate in existing:
        confidence = calculate_similarity(transaction, candidate)
        if confidence > best_confidence:
            best, best_confidence = candidate, confidence
    return best, best_confidence


def remove_internal_duplicates(transactions: List[Transaction]) -> Tuple[List[Transaction], List[InternalDuplicate]]:
    """Split a batch into unique rows and rows that repeat an earlier one."""
    unique: List[Transaction] = []
    internal: List[InternalDuplicate] = []
    for transaction in transactions:
        best: Optional[Transaction] = None
        best_confidence = 0
        for kept in unique:
            similarity = calculate_similarity(transaction, kept)
            if similarity >= HIGH_CONFIDENCE_THRESHOLD and similarity > best_confidence:
                best, best_confidence = kept, similarity
        if best is not None:
            internal.append(InternalDuplicate(transaction, best, best_confidence))
        else:
            unique.append(transaction)
    return unique, internal


def check_bulk_duplicates(
    new_transactions: List[Transaction],
    existing: List[Transaction],
    smart_mode: bool = True,
) -> ImportSummary:
    """Classify an import batch against the ledger.

    Smart mode only flags near-certain matches; when nothing near-certain
    is found the suspected duplicates are imported anyway.
    """
    unique, internal = remove_internal_duplicates(new_transactions)
    imported: List[Transaction] = []
    duplicates: List[Transaction] = []
    pairs: List[DuplicatePair] = []

    threshold = SMART_MODE_THRESHOLD if smart_mode else HIGH_CONFIDENCE_THRESHOLD
    for transaction in unique:
        match, confidence = _best_match(transaction, existing)
        if match is not None and confidence >= threshold:
            duplicates.append(transaction)
            pairs.append(DuplicatePair(transaction, match, confidence))
        else:
            imported.append(transaction)

    show_warning = bool(duplicates) and (
        not smart_mode or any(pair.confidence >= SMART_MODE_THRESHOLD for pair in pairs)
    )
    if not show_warning:
        imported = imported + duplicates
        duplicates, pairs = [], []

    return ImportSummary(
        total_transactions=len(new_transactions),
        new_transactions=len(imported),
        duplicate_transactions=len(duplicates),
        skipped_transactions=len(internal),
        imported_transactions=imported,
        duplicates=duplicates,
        duplicate_pairs=pairs,
        internal_duplicates=internal,
    )


def generate_transaction_hash(transaction: Transaction) -> str:
    payload = {
        'date': transaction.date,
        'amount': _round_half_up(transaction.amount * 100),
        'description': clean_description(transaction.description),
        'type': transaction.type,
    }
    return base64.b64encode(json.dumps(payload, sort_keys=True).encode('utf-8')).decode('ascii')


def file_signature(file_name: str, file_size: int, last_modified: float) -> str:
    return f"{file_name}-{file_size}-{int(last_modified)}"


def check_file_imported(file_name: str, file_size: int, last_modified: float,
                        path: Optional[Path] = None) -> bool:
    history = load_preferences(path)['import_history']
    return file_signature(file_name, file_size, last_modified) in history


def mark_file_imported(file_name: str, file_size: int, last_modified: float,
                       path: Optional[Path] = None) -> None:
    preferences = load_preferences(path)
    signature = file_signature(file_name, file_size, last_modified)
    if signature not in preferences['import_history']:
        preferences['import_history'].append(signature)
    preferences['last_import'] = datetime.now().isoformat(timespec='seconds')
    save_preferences(preferences, path)
    logger.info("Recorded import of %s", file_name)


def clear_import_history(path: Optional[Path] = None) -> None:
    preferences = load_preferences(path)
    preferences['import_history'] = []
    preferences['last_import'] = None
    save_preferences(preferences, path)


def get_import_stats(path: Optional[Path] = None) -> Dict[str, object]:
    preferences = load_preferences(path)
    return {
        'total_files': len(preferences['import_history']),
        'last_import': preferences['last_import'],
    }


def generate_duplicate_report(summary: ImportSummary) -> str:
    lines = [
        "Import Summary:",
        f"- Total transactions in file: {summary.total_transactions}",
        f"- New transactions imported: {summary.new_transactions}",
        f"- Duplicate transactions skipped: {summary.duplicate_transactions}",
        f"- Internal duplicates removed: {summary.skipped_transactions}",
    ]
    if summary.duplicates:
        lines.append("")
        lines.append("Duplicate Transactions Found:")
        for index, dup in enumerate(summary.duplicates, start=1):
            lines.append(f"{index}. {dup.date} - {dup.description} - {dup.amount:,.2f}")
    return "\n".join(lines)
