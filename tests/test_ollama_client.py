from __future__ import annotations

import json
import os
import unittest
from unittest import mock

import requests

from transcript_qa.config import EngineSettings, load_settings
from transcript_qa.errors import ClientError
from transcript_qa.interfaces import ChatMessage, CompositeClient, collect_stream
from transcript_qa.ollama_client import OllamaClient, extract_json_object

from fakes import FakeLlm


def ndjson(*bodies: dict) -> list[str]:
    return [json.dumps(body) for body in bodies]


class OllamaChatTests(unittest.TestCase):
    def make_client(self, lines):
        session = mock.MagicMock()
        resp = session.post.return_value.__enter__.return_value
        resp.iter_lines.return_value = lines
        return OllamaClient("http://ollama:11434/", model="m", embed_model="e", session=session), session

    def test_streams_content_until_done(self) -> None:
        client, session = self.make_client(
            ndjson(
                {"message": {"content": "Hello"}, "done": False},
                {"message": {"content": " world"}, "done": False},
                {"message": {"content": ""}, "done": True},
            )
            + [""]
        )
        text = collect_stream(client, [ChatMessage("user", "hi")], timeout=5)
        self.assertEqual(text, "Hello world")

        args, kwargs = session.post.call_args
        self.assertEqual(args[0], "http://ollama:11434/api/chat")
        self.assertTrue(kwargs["stream"])
        self.assertEqual(kwargs["json"]["model"], "m")
        self.assertEqual(kwargs["json"]["messages"], [{"role": "user", "content": "hi"}])
        self.assertEqual(kwargs["timeout"][1], 5)

    def test_error_line_raises(self) -> None:
        client, _ = self.make_client(ndjson({"error": "model not found"}))
        with self.assertRaises(ClientError):
            list(client.stream_chat([ChatMessage("user", "hi")], timeout=5))

    def test_garbage_line_raises(self) -> None:
        client, _ = self.make_client(["{not json"])
        with self.assertRaises(ClientError):
            list(client.stream_chat([ChatMessage("user", "hi")], timeout=5))

    def test_transport_error_raises(self) -> None:
        session = mock.MagicMock()
        session.post.side_effect = requests.ConnectionError("refused")
        client = OllamaClient(session=session)
        with self.assertRaises(ClientError):
            list(client.stream_chat([ChatMessage("user", "hi")], timeout=5))


class OllamaEmbedTests(unittest.TestCase):
    def test_embeds_batch_in_one_request(self) -> None:
        session = mock.MagicMock()
        session.post.return_value.json.return_value = {"embeddings": [[1.0, 0.0], [0.0, 1.0]]}
        client = OllamaClient(embed_model="nomic-embed-text", session=session)
        vectors = client.embed_texts(["a", "b"], timeout=3)
        self.assertEqual(vectors, [[1.0, 0.0], [0.0, 1.0]])
        args, kwargs = session.post.call_args
        self.assertTrue(args[0].endswith("/api/embed"))
        self.assertEqual(kwargs["json"], {"model": "nomic-embed-text", "input": ["a", "b"]})

    def test_count_mismatch_raises(self) -> None:
        session = mock.MagicMock()
        session.post.return_value.json.return_value = {"embeddings": [[1.0]]}
        client = OllamaClient(session=session)
        with self.assertRaises(ClientError):
            client.embed_texts(["a", "b"], timeout=3)

    def test_empty_input_skips_request(self) -> None:
        session = mock.MagicMock()
        self.assertEqual(OllamaClient(session=session).embed_texts([], timeout=3), [])
        session.post.assert_not_called()


class CompositeClientTests(unittest.TestCase):
    def test_routes_each_capability(self) -> None:
        chat = FakeLlm(["ok"])
        embed = FakeLlm()
        client = CompositeClient(chat, embed)
        self.assertEqual(collect_stream(client, [ChatMessage("user", "x")], timeout=5), "ok")
        client.embed_texts(["rocket"], timeout=5)
        self.assertEqual(chat.embed_calls, [])
        self.assertEqual(embed.embed_calls, [["rocket"]])


class JsonExtractionTests(unittest.TestCase):
    def test_extracts_from_fences_and_chatter(self) -> None:
        self.assertEqual(extract_json_object('```json\n{"a": 1}\n```'), {"a": 1})
        self.assertEqual(extract_json_object('Here you go: {"a": 2} hope it helps'), {"a": 2})
        self.assertIsNone(extract_json_object("no json"))
        self.assertIsNone(extract_json_object("[1, 2]"))


class SettingsTests(unittest.TestCase):
    def test_environment_overrides(self) -> None:
        env = {
            "TRANSCRIPT_QA_TOP_K": "3",
            "TRANSCRIPT_QA_MIN_SIMILARITY": "0.5",
            "TRANSCRIPT_QA_GENERATION_TIMEOUT": "not-a-number",
        }
        with mock.patch.dict(os.environ, env):
            settings = load_settings()
        self.assertEqual(settings.top_k, 3)
        self.assertEqual(settings.min_similarity, 0.5)
        self.assertEqual(settings.generation_timeout, EngineSettings().generation_timeout)


if __name__ == "__main__":
    unittest.main()
