from __future__ import annotations

import threading
import unittest

from transcript_qa import (
    AbsoluteRange,
    AnswerStatus,
    EngineSettings,
    ParseError,
    QueryCancelled,
    QueryIntent,
    answer_query_from_transcript,
)
from transcript_qa.errors import ClientError

from fakes import DOCKING, FOUR_CUES, SHORT_TAIL, FakeLlm

SETTINGS = EngineSettings()

QUESTION_VERDICT = '{"intent": "question", "range": {"type": "none"}, "language": "en"}'
UNRELATED_VERDICT = '{"intent": "unrelated", "range": {"type": "none"}, "language": "en"}'


def ask(llm, query, transcript=FOUR_CUES, **kwargs):
    return answer_query_from_transcript(llm, query, transcript, settings=SETTINGS, **kwargs)


class TimeRangeFlowTests(unittest.TestCase):
    def test_clock_window_quotes_bracketed_cues_without_model(self) -> None:
        llm = FakeLlm()
        result = ask(llm, "what happened 8:30 to 9:05", DOCKING)
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertIs(result.intent, QueryIntent.TIME_RANGE)
        self.assertIn("[00:08:30.670 --> 00:08:34.130]", result.content)
        self.assertIn("08:30-09:05", result.content)
        self.assertNotIn("Before the window starts.", result.content)
        self.assertEqual(llm.chat_calls, [])
        self.assertEqual(llm.embed_calls, [])
        self.assertEqual(result.source, "extractive")

    def test_tail_half_selects_last_two_segments(self) -> None:
        result = ask(FakeLlm(), "最后一半讲了啥")
        self.assertEqual(result.time_range, AbsoluteRange(20.0, 40.0))
        self.assertEqual([e.segment.position for e in result.evidence], [2, 3])
        self.assertEqual([e.index for e in result.evidence], [1, 2])
        self.assertIn("00:20-00:40", result.content)

    def test_partial_coverage_names_both_windows(self) -> None:
        result = ask(FakeLlm(), "3:00-4:00讲了什么", SHORT_TAIL)
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertTrue(result.coverage.is_partial)
        self.assertIn("03:00-04:00", result.content)
        self.assertIn("03:00-03:19", result.content)
        self.assertNotIn("One more second.", result.content)
        starts = [e.start_seconds for e in result.evidence]
        self.assertEqual(starts, sorted(starts))
        self.assertTrue(all(180 <= s <= 240 for s in starts))

    def test_window_outside_transcript_is_insufficient(self) -> None:
        result = ask(FakeLlm(), "10:00-11:00")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertIs(result.intent, QueryIntent.UNRELATED)
        self.assertIn("10:00-11:00", result.content)
        self.assertIn("00:00-00:40", result.content)
        self.assertEqual(result.evidence, ())


class SummaryFlowTests(unittest.TestCase):
    def test_grounded_summary_draft_is_used(self) -> None:
        draft = "The workshop covers rocket engines, fuel pumps and nozzle tests [E1][E2][E3]."
        llm = FakeLlm([draft])
        result = ask(llm, "summarize the video")
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertEqual(result.content, draft)
        self.assertEqual(result.source, "model")
        self.assertEqual(len(result.evidence), 4)
        self.assertIn("transcript-grounded summarization assistant", llm.system_prompts()[0])
        self.assertEqual(llm.embed_calls, [])

    def test_generation_failure_falls_back_to_sampled_quotes(self) -> None:
        llm = FakeLlm(chat_error=ClientError("connection refused"))
        result = ask(llm, "summarize the video")
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertEqual(result.source, "extractive")
        self.assertTrue(result.content.startswith("According to the transcript, the video highlights are:"))
        self.assertIn("[00:00:00.000 --> 00:00:10.000]", result.content)
        self.assertIn("[00:00:30.000 --> 00:00:40.000]", result.content)

    def test_ungrounded_summary_is_discarded(self) -> None:
        llm = FakeLlm(["Bananas grow in tropical climates [E1]."])
        result = ask(llm, "summarize the video")
        self.assertEqual(result.source, "extractive")
        self.assertNotIn("Bananas", result.content)

    def test_scoped_summary_uses_window(self) -> None:
        transcript = "\n".join(
            f"[00:{s // 60:02d}:{s % 60:02d}.000 --> 00:{(s + 10) // 60:02d}:{(s + 10) % 60:02d}.000] "
            f"part {s // 10} talks about topic {s}"
            for s in range(0, 90, 10)
        )
        llm = FakeLlm(chat_error=ClientError("down"))
        result = ask(llm, "视频前1/3重点讲了什么内容", transcript)
        self.assertIs(result.intent, QueryIntent.SUMMARY)
        self.assertEqual(result.time_range, AbsoluteRange(0.0, 30.0))
        self.assertIn("00:00-00:30", result.content)
        self.assertTrue(all(e.start_seconds <= 30 for e in result.evidence))

    def test_article_request_builds_three_part_digest(self) -> None:
        llm = FakeLlm(chat_error=ClientError("down"))
        result = ask(llm, "总结这个视频，写一篇500字文章")
        self.assertIs(result.intent, QueryIntent.SUMMARY)
        self.assertIn("开头部分", result.content)
        self.assertIn("后段", result.content)

    def test_chinese_summary_over_english_transcript_is_accepted(self) -> None:
        transcript = (
            "[00:00:00.000 --> 00:00:05.000] Pilots need many skills.\n"
            "[00:00:05.000 --> 00:00:10.000] Training takes years of practice.\n"
        )
        draft = "视频指出飞行员需要掌握多种 skills，并且 training 需要多年 [E1][E2]。"
        llm = FakeLlm([draft])
        result = ask(llm, "总结一下", transcript)
        self.assertEqual(result.source, "model")
        self.assertEqual(result.content, draft)
        self.assertIn("Respond in Simplified Chinese.", llm.system_prompts()[0])

    def test_model_summary_without_relevant_lines_is_insufficient(self) -> None:
        llm = FakeLlm(['{"intent": "summary", "range": {"type": "none"}, "language": "en"}'])
        result = ask(llm, "Give me a rundown of the cooking segment")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertEqual(len(llm.chat_calls), 1)

    def test_off_topic_summary_request_is_insufficient(self) -> None:
        llm = FakeLlm()
        result = ask(llm, "summarize the weather forecast for Paris tomorrow")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertIs(result.intent, QueryIntent.UNRELATED)
        self.assertIn("transcript", result.content)
        self.assertEqual(result.evidence, ())
        self.assertEqual(llm.chat_calls, [])

    def test_topical_summary_request_is_answered(self) -> None:
        draft = "The nozzle is tested at full thrust [E3]."
        llm = FakeLlm([draft])
        result = ask(llm, "summarize the nozzle part")
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertIs(result.intent, QueryIntent.SUMMARY)
        self.assertEqual(result.content, draft)
        self.assertEqual(len(llm.embed_calls), 1)


class QuestionFlowTests(unittest.TestCase):
    def test_grounded_answer_with_citation(self) -> None:
        llm = FakeLlm([QUESTION_VERDICT, "The nozzle is tested at full thrust [E1]."])
        result = ask(llm, "How is the nozzle tested?")
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertIs(result.intent, QueryIntent.QUESTION)
        self.assertEqual(result.source, "model")
        self.assertEqual(len(result.evidence), 1)
        self.assertEqual(result.evidence[0].segment.position, 2)
        self.assertIn("transcript-grounded QA assistant", llm.system_prompts()[1])

    def test_bad_citation_falls_back_to_quotes(self) -> None:
        llm = FakeLlm([QUESTION_VERDICT, "The nozzle is tested [E7]."])
        result = ask(llm, "How is the nozzle tested?")
        self.assertEqual(result.source, "extractive")
        self.assertIn("[00:00:20.000 --> 00:00:30.000] Then we test the nozzle at full thrust. [E1]", result.content)

    def test_unrelated_verdict_with_hits_becomes_question(self) -> None:
        llm = FakeLlm([UNRELATED_VERDICT, ""])
        result = ask(llm, "anything on telemetry?")
        self.assertIs(result.intent, QueryIntent.QUESTION)
        self.assertIs(result.status, AnswerStatus.ANSWERED)
        self.assertIn("telemetry", result.content)

    def test_off_topic_query_is_insufficient(self) -> None:
        llm = FakeLlm([UNRELATED_VERDICT])
        result = ask(llm, "What's the weather in Paris tomorrow?")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertIn("transcript", result.content)
        self.assertEqual(result.evidence, ())

    def test_cross_language_question_without_evidence(self) -> None:
        llm = FakeLlm([QUESTION_VERDICT])
        result = ask(llm, "这个视频里讲了摩斯密码和二进制吗？")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertIn("transcript", result.content)

    def test_embedding_failure_is_insufficient(self) -> None:
        llm = FakeLlm([QUESTION_VERDICT], embed_error=ClientError("no embed model"))
        result = ask(llm, "How is the nozzle tested?")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)

    def test_classifier_failure_still_tries_relevance(self) -> None:
        llm = FakeLlm(["garbage", "The nozzle is tested at full thrust [E1]."])
        result = ask(llm, "How is the nozzle tested?")
        self.assertIs(result.intent, QueryIntent.QUESTION)
        self.assertEqual(result.source, "model")

    def test_infinite_window_verdict_is_insufficient(self) -> None:
        llm = FakeLlm(
            ['{"intent": "time_range", "range": {"type": "absolute", "start_seconds": 0, '
             '"end_seconds": 1e999}, "language": "en"}']
        )
        result = ask(llm, "the bit with the pumps please")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertIsNone(result.time_range)
        self.assertEqual(result.evidence, ())


class EdgeCaseTests(unittest.TestCase):
    def test_malformed_transcript_raises(self) -> None:
        with self.assertRaises(ParseError):
            ask(FakeLlm(), "summarize", "no timestamps here")

    def test_blank_query_is_insufficient(self) -> None:
        llm = FakeLlm()
        result = ask(llm, "   ")
        self.assertIs(result.status, AnswerStatus.INSUFFICIENT_EVIDENCE)
        self.assertEqual(llm.chat_calls, [])

    def test_parse_warnings_are_reported(self) -> None:
        result = ask(FakeLlm(), "最后一半讲了啥", "--- header ---\n" + FOUR_CUES)
        self.assertEqual(len(result.warnings), 1)

    def test_cancelled_before_start(self) -> None:
        event = threading.Event()
        event.set()
        with self.assertRaises(QueryCancelled):
            ask(FakeLlm(), "summarize the video", cancel_event=event)

    def test_cancelled_mid_stream_propagates(self) -> None:
        event = threading.Event()
        llm = FakeLlm(
            ["The workshop covers fuel pumps and the nozzle [E2][E3]."],
            chunk_size=4,
            on_chunk=lambda i: event.set() if i >= 8 else None,
        )
        with self.assertRaises(QueryCancelled):
            ask(llm, "summarize the video", cancel_event=event)


if __name__ == "__main__":
    unittest.main()
