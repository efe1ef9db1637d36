from __future__ import annotations

import os
import tempfile
import unittest
from unittest import mock

from hybrid_rag import ConfigurationError, HybridConfig, Settings, load_env


class HybridConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = HybridConfig()

        self.assertEqual(config.embedding_model, "bge-m3")
        self.assertEqual(config.batch_size, 100)
        self.assertEqual((config.semantic_weight, config.lexical_weight), (0.7, 0.3))
        self.assertEqual(config.rrf_k, 60)
        self.assertEqual(config.top_k, 10)
        self.assertEqual(config.prefetch, 20)

    def test_prefetch_is_at_least_top_k(self) -> None:
        self.assertEqual(HybridConfig(top_k=50, prefetch_k=20).prefetch, 50)

    def test_invalid_values_are_rejected(self) -> None:
        for kwargs in (
            {"batch_size": 0},
            {"semantic_weight": -0.1},
            {"lexical_weight": -1},
            {"rrf_k": -1},
            {"top_k": 0},
            {"prefetch_k": 0},
            {"max_workers": 0},
            {"embedding_model": ""},
        ):
            with self.assertRaises(ConfigurationError, msg=kwargs):
                HybridConfig(**kwargs)

    def test_weights_need_not_sum_to_one(self) -> None:
        config = HybridConfig(semantic_weight=2.0, lexical_weight=0.0)

        self.assertEqual(config.semantic_weight + config.lexical_weight, 2.0)

    def test_from_env(self) -> None:
        config = HybridConfig.from_env(
            {
                "EMBEDDING_MODEL": "nomic-embed-text",
                "HYBRID_BATCH_SIZE": "25",
                "HYBRID_SEMANTIC_WEIGHT": "0.5",
                "HYBRID_LEXICAL_WEIGHT": "0.5",
                "HYBRID_RRF_K": "10",
                "HYBRID_TOP_K": " 5 ",
                "HYBRID_PREFETCH_K": "",
                "HYBRID_MAX_WORKERS": "4",
            }
        )

        self.assertEqual(config.embedding_model, "nomic-embed-text")
        self.assertEqual(config.batch_size, 25)
        self.assertEqual(config.semantic_weight, 0.5)
        self.assertEqual(config.rrf_k, 10)
        self.assertEqual(config.top_k, 5)
        self.assertEqual(config.prefetch_k, 20)
        self.assertEqual(config.max_workers, 4)

    def test_from_env_rejects_non_numbers(self) -> None:
        with self.assertRaises(ConfigurationError) as ctx:
            HybridConfig.from_env({"HYBRID_RRF_K": "sixty"})
        self.assertIn("HYBRID_RRF_K", str(ctx.exception))
        self.assertEqual(ctx.exception.stage, "config")


class SettingsTests(unittest.TestCase):
    def test_from_env_reads_backends_and_connections(self) -> None:
        settings = Settings.from_env(
            {
                "EMBEDDING_PROVIDER": "OpenAI",
                "OPENAI_API_KEY": "sk-test",
                "QDRANT_URL": "http://qdrant.test:6333",
                "QDRANT_PREFER_GRPC": "yes",
                "QDRANT_COLLECTION": "kb",
                "POSTGRES_DSN": "postgresql://db.test/kb",
                "DOCUMENT_SOURCE": "jsonl",
                "DOCUMENTS_JSONL": "/data/docs.jsonl",
                "LEXICAL_BACKEND": "bm25",
                "HYBRID_TOP_K": "3",
            }
        )

        self.assertEqual(settings.embedding_provider, "openai")
        self.assertEqual(settings.openai_api_key, "sk-test")
        self.assertIsNone(settings.openai_base_url)
        self.assertEqual(settings.qdrant_url, "http://qdrant.test:6333")
        self.assertTrue(settings.qdrant_prefer_grpc)
        self.assertEqual(settings.collection, "kb")
        self.assertEqual(settings.source, "jsonl")
        self.assertEqual(settings.lexical_backend, "bm25")
        self.assertEqual(settings.hybrid.top_k, 3)

    def test_defaults_from_empty_env(self) -> None:
        settings = Settings.from_env({})

        self.assertEqual(settings, Settings())
        self.assertEqual(settings.collection, "documents")
        self.assertEqual(settings.text_search_config, "simple")

    def test_invalid_choices(self) -> None:
        for env in (
            {"EMBEDDING_PROVIDER": "cohere"},
            {"DOCUMENT_SOURCE": "csv"},
            {"DOCUMENT_SOURCE": "jsonl"},
            {"LEXICAL_BACKEND": "elastic"},
        ):
            with self.assertRaises(ConfigurationError, msg=env):
                Settings.from_env(env)


class LoadEnvTests(unittest.TestCase):
    def write_env(self, content: str) -> str:
        handle = tempfile.NamedTemporaryFile("w", suffix=".env", delete=False, encoding="utf-8")
        with handle:
            handle.write(content)
        self.addCleanup(os.unlink, handle.name)
        return handle.name

    def test_file_values_do_not_override_environment(self) -> None:
        path = self.write_env(
            "# comment\n"
            "HYBRID_TEST_A=from-file\n"
            "export HYBRID_TEST_B='quoted value'\n"
            "HYBRID_TEST_C=\"x=y\"\n"
            "not a pair\n"
        )

        with mock.patch.dict(os.environ, {"HYBRID_TEST_A": "from-env"}):
            load_env(path, force=True)
            self.assertEqual(os.environ["HYBRID_TEST_A"], "from-env")
            self.assertEqual(os.environ["HYBRID_TEST_B"], "quoted value")
            self.assertEqual(os.environ["HYBRID_TEST_C"], "x=y")

    def test_file_is_read_once_unless_forced(self) -> None:
        first = self.write_env("HYBRID_TEST_D=1\n")
        second = self.write_env("HYBRID_TEST_E=2\n")

        with mock.patch.dict(os.environ, {}):
            load_env(first, force=True)
            load_env(second)
            self.assertNotIn("HYBRID_TEST_E", os.environ)
            load_env(second, force=True)
            self.assertEqual(os.environ["HYBRID_TEST_E"], "2")

    def test_missing_file_is_ignored(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            load_env(os.path.join(tmp, ".env"), force=True)

    def test_unreadable_file_is_a_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            env_dir = os.path.join(tmp, ".env")
            os.mkdir(env_dir)
            with self.assertRaises(ConfigurationError) as ctx:
                load_env(env_dir, force=True)
        self.assertEqual(ctx.exception.stage, "config")


if __name__ == "__main__":
    unittest.main()
