"""Tests for personal-data detection, the guard and the audit log."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import FailingPersonalDataClassifier
from knowledge_lifecycle.cache.answer_cache import cache_key
from knowledge_lifecycle.db.models import PersonalDataLog
from knowledge_lifecycle.models import utcnow
from knowledge_lifecycle.privacy.detector import PatternPersonalDataClassifier
from knowledge_lifecycle.privacy.guard import (
    CLASSIFICATION_FAILURE,
    MAX_MASK_CHARS,
    PersonalDataGuard,
    mask_preview,
)


def _types(text: str) -> set[str]:
    return {match.type for match in PatternPersonalDataClassifier().detect(text)}


class TestPatternDetection:
    """Tests for PatternPersonalDataClassifier."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Contact me at jane.doe@example.com", "email"),
            ("Call 010-1234-5678 after lunch", "phone"),
            ("My number is 555-123-4567", "phone"),
            ("Born 1999년 3월 15일", "birthday"),
            ("DOB 03/15/1999", "birthday"),
            ("주민번호 990315-1234567", "residence_number"),
            ("Card 4111 1111 1111 1111 expires soon", "credit_card"),
            ("학번: 20231234", "student_id"),
            ("My student id is A1234567", "student_id"),
            ("My password is hunter22", "password"),
            ("비밀번호: qwer1234", "password"),
            ("The verification code is 482913", "code"),
            ("서울특별시 강남구 테헤란로 123", "address"),
            ("내일 3시에 만나요", "schedule"),
            ("What's my schedule tomorrow at 3pm?", "schedule"),
            ("My name is Minji", "personal_info"),
            ("I live in Busan", "personal_info"),
        ],
    )
    def test_detects(self, text, expected):
        assert expected in _types(text)

    @pytest.mark.parametrize(
        "text",
        [
            "What year was the school founded?",
            "How do I reset my password on the student portal?",
            "What is the zip code format for campus mail?",
            "The library opens at 9 and closes at 10.",
            "Tuition is due before the semester starts.",
        ],
    )
    def test_general_questions_not_flagged(self, text):
        assert _types(text) == set()

    def test_duplicates_reported_once(self):
        matches = PatternPersonalDataClassifier().detect("a@b.com and again a@b.com")
        assert [match.value for match in matches] == ["a@b.com"]

    @pytest.mark.asyncio
    async def test_classify_result(self):
        result = await PatternPersonalDataClassifier().classify("Mail jane@example.com or call 010-1234-5678")
        assert result.has_personal_data is True
        assert result.types == ["email", "phone"]

    @pytest.mark.asyncio
    async def test_classify_empty_text(self):
        result = await PatternPersonalDataClassifier().classify("")
        assert result.has_personal_data is False
        assert result.types == []


class TestMaskPreview:
    """Tests for mask_preview."""

    def test_keeps_visible_prefix(self):
        assert mask_preview("jane@example.com", visible_chars=4) == "jane********"

    def test_mask_is_bounded(self):
        masked = mask_preview("x" * 200, visible_chars=4)
        assert masked == "xxxx" + "*" * MAX_MASK_CHARS

    def test_short_value_fully_masked(self):
        assert mask_preview("1234", visible_chars=4) == "****"


class TestPersonalDataGuard:
    """Tests for PersonalDataGuard and the audit log."""

    @pytest.mark.asyncio
    async def test_clean_text_not_audited(self, guard, session_maker):
        result = await guard.check("What year was the school founded?", source="test")
        assert result.has_personal_data is False

        async with session_maker() as session:
            rows = (await session.execute(select(PersonalDataLog))).scalars().all()
        assert rows == []

    @pytest.mark.asyncio
    async def test_flagged_text_audited_with_masked_preview(self, guard, session_maker):
        text = "Email me at jane.doe@example.com"
        result = await guard.check(text, source="test")
        assert result.has_personal_data is True
        assert result.types == ["email"]

        async with session_maker() as session:
            rows = (await session.execute(select(PersonalDataLog))).scalars().all()
        assert len(rows) == 1
        row = rows[0]
        assert row.content_key == cache_key(text)
        assert row.data_type == "email"
        assert row.source == "test"
        assert "jane.doe@example.com" not in row.preview
        assert row.preview.startswith("jane")
        assert len(row.preview) <= 4 + MAX_MASK_CHARS

    @pytest.mark.asyncio
    async def test_pair_audited_under_question_key(self, guard, audit_log):
        question = "What's my schedule tomorrow at 3pm?"
        result = await guard.check_pair(question, "You have a seminar.", source="learning_queue")
        assert result.has_personal_data is True

        keys = await audit_log.recent_content_keys(utcnow() - timedelta(hours=1))
        assert keys == [cache_key(question)]

    @pytest.mark.asyncio
    async def test_one_row_per_type(self, guard, audit_log):
        await guard.check("jane@example.com, 010-1234-5678", source="test")
        rows = await audit_log.recent(limit=10)
        assert sorted(row.data_type for row in rows) == ["email", "phone"]

    @pytest.mark.asyncio
    async def test_classifier_failure_fails_closed(self, audit_log):
        guard = PersonalDataGuard(classifier=FailingPersonalDataClassifier(), audit_log=audit_log)
        result = await guard.check("anything at all", source="test")

        assert result.has_personal_data is True
        assert result.types == [CLASSIFICATION_FAILURE]
        rows = await audit_log.recent()
        assert [row.data_type for row in rows] == [CLASSIFICATION_FAILURE]
        assert rows[0].preview == ""

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_break_check(self):
        class BrokenAuditLog:
            async def record(self, *args, **kwargs):
                raise RuntimeError("database locked")

        guard = PersonalDataGuard(audit_log=BrokenAuditLog())
        result = await guard.check("jane@example.com")
        assert result.has_personal_data is True

    @pytest.mark.asyncio
    async def test_recent_content_keys_respects_window(self, guard, audit_log):
        await guard.check("jane@example.com", source="test")
        assert await audit_log.recent_content_keys(utcnow() + timedelta(minutes=1)) == []
