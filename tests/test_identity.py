from __future__ import annotations

import subprocess
import sys
from pathlib import Path
import unittest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
API_CODE_PATH = PROJECT_ROOT / "api-code"
if str(API_CODE_PATH) not in sys.path:
    sys.path.insert(0, str(API_CODE_PATH))

from domain import (
    AutoDeployStatus,
    as_domain_list,
    canonical_repo_name,
    env_prefix,
    host_from_url,
    is_valid_transition,
    normalize_host,
    normalize_slug,
    shell_quote,
)


SLUG_SAMPLES = [
    "KANI TAXI",
    "  Acme  App!! ",
    "--already-slugged--",
    "Ünïcode Café",
    "a__b..c",
    "",
    "   ",
    "UPPER/lower\\mixed",
    "x" * 3 + "---" + "y",
]


class NormalizeSlugTest(unittest.TestCase):
    def test_known_values(self) -> None:
        self.assertEqual(normalize_slug("KANI TAXI"), "kani-taxi")
        self.assertEqual(normalize_slug("  Acme  App!! "), "acme-app")
        self.assertEqual(normalize_slug("a__b..c"), "a-b-c")
        self.assertEqual(normalize_slug(None), "")
        self.assertEqual(normalize_slug(42), "")

    def test_output_alphabet_and_idempotence(self) -> None:
        for sample in SLUG_SAMPLES:
            with self.subTest(sample=sample):
                slug = normalize_slug(sample)
                self.assertRegex(slug, r"^[a-z0-9-]*$")
                self.assertFalse(slug.startswith("-"))
                self.assertFalse(slug.endswith("-"))
                self.assertNotIn("--", slug)
                self.assertEqual(normalize_slug(slug), slug)


class IdentityHelpersTest(unittest.TestCase):
    def test_canonical_repo_name_uses_last_segment(self) -> None:
        self.assertEqual(canonical_repo_name("Org/Acme-App.git"), "acmeapp")
        self.assertEqual(canonical_repo_name("acme_app"), "acmeapp")
        self.assertEqual(canonical_repo_name("https://github.com/org/acme/"), "acme")
        self.assertEqual(canonical_repo_name(None), "")

    def test_normalize_host_strips_scheme_path_and_port(self) -> None:
        self.assertEqual(normalize_host("HTTPS://Acme.Example.com:8443/path?q=1"), "acme.example.com")
        self.assertEqual(normalize_host("  localhost:3000 "), "localhost")
        self.assertEqual(normalize_host(None), "")

    def test_host_from_url(self) -> None:
        self.assertEqual(host_from_url("https://preview.acme.dev/app"), "preview.acme.dev")
        self.assertEqual(host_from_url("acme.example.com"), "acme.example.com")
        self.assertEqual(host_from_url(""), "")

    def test_as_domain_list_accepts_strings_and_lists(self) -> None:
        self.assertEqual(
            as_domain_list("acme.example.com, www.acme.example.com"),
            ["acme.example.com", "www.acme.example.com"],
        )
        self.assertEqual(as_domain_list(["https://A.example.com", 7, ""]), ["a.example.com"])
        self.assertEqual(as_domain_list(None), [])

    def test_env_prefix(self) -> None:
        self.assertEqual(env_prefix("kani-taxi"), "KANI_TAXI")


class ShellQuoteTest(unittest.TestCase):
    def test_single_quote_escape(self) -> None:
        self.assertEqual(shell_quote("feature/o'brien"), "'feature/o'\"'\"'brien'")

    def test_values_round_trip_through_sh(self) -> None:
        for value in ["feature/o'brien", "main", "a b; rm -rf /", "$(whoami) `id`", "''", ""]:
            with self.subTest(value=value):
                completed = subprocess.run(
                    ["sh", "-c", "printf %s " + shell_quote(value)],
                    capture_output=True,
                    text=True,
                    check=True,
                )
                self.assertEqual(completed.stdout, value)


class JobStatusTest(unittest.TestCase):
    def test_transitions(self) -> None:
        self.assertTrue(is_valid_transition(AutoDeployStatus.QUEUED, AutoDeployStatus.RUNNING))
        self.assertTrue(is_valid_transition(AutoDeployStatus.RUNNING, AutoDeployStatus.FAILED))
        self.assertFalse(is_valid_transition(AutoDeployStatus.COMPLETED, AutoDeployStatus.RUNNING))
        self.assertFalse(is_valid_transition(AutoDeployStatus.QUEUED, AutoDeployStatus.COMPLETED))
        self.assertFalse(is_valid_transition(AutoDeployStatus.QUEUED, AutoDeployStatus.FAILED))
        self.assertTrue(is_valid_transition(AutoDeployStatus.RUNNING, AutoDeployStatus.RUNNING))
        self.assertTrue(AutoDeployStatus.FAILED.is_terminal)
        self.assertFalse(AutoDeployStatus.QUEUED.is_terminal)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
