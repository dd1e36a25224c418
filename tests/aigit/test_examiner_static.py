"""Tests for the deterministic static examiner and shared grading helpers."""
from __future__ import annotations

import pytest
from conftest import STRONG_ANSWER, make_context

from aigit.decision import evaluate
from aigit.examiner import (
    STATIC_QUESTIONS,
    TRUNCATION_MARKER,
    StaticExaminer,
    build_examiner,
    conservative_flags,
    extract_file_like_tokens,
    keyword_score,
)
from aigit.models import Answers, Decision, Exam, ExamQuestion
from aigit.policy import Policy

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestKeywordScore:
    def test_blank(self):
        assert keyword_score("   ", ["risk"]) == 0.0

    def test_none(self):
        assert keyword_score("nothing relevant", ["risk", "break"]) == 0.2

    def test_one(self):
        assert keyword_score("some risk here", ["risk", "break"]) == 0.6

    def test_two_case_insensitive(self):
        assert keyword_score("RISK that it may Break", ["risk", "break"]) == 1.0


class TestFileTokens:
    def test_extracts_paths(self):
        assert extract_file_like_tokens("see (src/app.py), and lib/x.rs.") == ["lib/x.rs", "src/app.py"]

    def test_requires_slash_and_dot(self):
        assert extract_file_like_tokens("README.md src/dir and v1.2") == []

    def test_flags_unknown_files(self):
        exam = Exam(questions=[ExamQuestion(id="q1", category="risk", prompt="p")])
        answers = Answers(answers={"q1": "touches src/app.py and src/other.py"})
        assert conservative_flags(exam, answers, ["src/app.py"]) == [
            "q1: mentions file not in diff: src/other.py"
        ]


# ---------------------------------------------------------------------------
# StaticExaminer
# ---------------------------------------------------------------------------


class TestStaticExam:
    def test_fixed_eight_questions(self):
        exam = StaticExaminer().generate_exam(make_context())
        assert [q.id for q in exam.questions] == [q[0] for q in STATIC_QUESTIONS]
        assert len(exam.questions) == 8
        assert {"risk", "testing", "rollback"} <= {q.category for q in exam.questions}
        assert all(q.choices is None for q in exam.questions)

    def test_same_exam_for_any_diff(self):
        a = StaticExaminer().generate_exam(make_context())
        b = StaticExaminer().generate_exam(make_context(diff="diff --git a/x b/x\n"))
        assert a == b


class TestStaticGrading:
    def setup_method(self):
        self.examiner = StaticExaminer()
        self.ctx = make_context()
        self.exam = self.examiner.generate_exam(self.ctx)

    def _grade(self, answers):
        return self.examiner.grade_exam(self.ctx, self.exam, Answers(answers=answers))

    def test_long_specific_risk_answer_scores_full(self):
        answer = ("The main risk in src/app.py is that downstream parsers may break because the "
                  + "greeting output changes format " * 17).strip()
        assert len(answer.split()) >= 80
        score = self._grade({"risk": answer})
        risk = next(q for q in score.per_question if q.id == "risk")
        assert risk.score == pytest.approx(1.0)
        assert risk.completeness == 1.0
        assert risk.specificity == 1.0
        assert risk.notes == []

    def test_empty_answer_scores_zero(self):
        score = self._grade({})
        assert score.total_score == 0.0
        assert all("empty answer" in q.notes for q in score.per_question)

    def test_short_unspecific_answer(self):
        score = self._grade({"risk": "nothing"})
        risk = next(q for q in score.per_question if q.id == "risk")
        assert risk.specificity == 0.3
        assert risk.score == pytest.approx(0.4 + 0.4 * 0.3 + 0.2 * 0.2)
        assert "answer is short (1 words)" in risk.notes
        assert "does not mention any changed file path" in risk.notes
        assert any(n.startswith("missing category signals") for n in risk.notes)

    def test_long_unspecific_answer(self):
        score = self._grade({"intent": "word " * 25})
        intent = next(q for q in score.per_question if q.id == "intent")
        assert intent.specificity == 0.6

    def test_all_strong_answers_pass(self):
        answers = {qid: STRONG_ANSWER for qid, _, _ in STATIC_QUESTIONS}
        score = self._grade(answers)
        assert score.total_score == pytest.approx(1.0)
        assert score.hallucination_flags == []
        result = evaluate(Policy(), self.exam, Answers(answers=answers), score)
        assert result.decision is Decision.PASS

    def test_hallucinated_path_flagged(self):
        answers = {qid: STRONG_ANSWER for qid, _, _ in STATIC_QUESTIONS}
        answers["risk"] = STRONG_ANSWER + " Also src/ghost.py."
        score = self._grade(answers)
        assert score.hallucination_flags == ["risk: mentions file not in diff: src/ghost.py"]
        result = evaluate(Policy(), self.exam, Answers(answers=answers), score)
        assert result.decision is Decision.FAIL

    def test_deterministic(self):
        answers = {"risk": STRONG_ANSWER, "testing": "ran unit tests"}
        assert self._grade(answers) == self._grade(answers)

    def test_scores_bounded(self):
        answers = {qid: STRONG_ANSWER * 3 for qid, _, _ in STATIC_QUESTIONS}
        for q in self._grade(answers).per_question:
            assert 0.0 <= q.score <= 1.0


class TestContext:
    def test_truncates_to_budget(self):
        policy = Policy(max_tokens_context=10)
        ctx = make_context(diff="x" * 100, policy=policy)
        assert ctx.diff == "x" * 40 + TRUNCATION_MARKER
        assert ctx.truncated

    def test_short_diff_untouched(self):
        ctx = make_context(diff="small")
        assert ctx.diff == "small"
        assert not ctx.truncated


class TestBuildExaminer:
    def test_default_is_static(self):
        assert isinstance(build_examiner(Policy()), StaticExaminer)

    def test_codex_provider(self):
        from aigit.examiner import CodexCliExaminer

        assert isinstance(build_examiner(Policy(provider="codex-cli")), CodexCliExaminer)
