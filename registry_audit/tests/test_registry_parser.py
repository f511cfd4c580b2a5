import tempfile
import unittest
from pathlib import Path

from registry_audit import config
from registry_audit.errors import DataFetchError
from registry_audit.parsers.registry import load_registry, parse_registry


class RegistryParserTests(unittest.TestCase):
    def test_walks_modules_groups_and_top_level_features(self) -> None:
        payload = {
            "modules": [
                {
                    "code": "ess",
                    "groups": [
                        {"code": "time", "features": [{"code": "ess_leave", "name": "Leave", "routePath": "/ess/leave"}]},
                    ],
                    "features": [{"code": "ess_profile", "name": "Profile"}],
                },
            ],
            "features": [{"featureCode": "help_center", "featureName": "Help", "moduleCode": "help"}],
        }

        entries = parse_registry(payload)

        self.assertEqual([e.featureCode for e in entries], ["ess_leave", "ess_profile", "help_center"])
        self.assertEqual(entries[0].moduleCode, "ess")
        self.assertEqual(entries[0].routePath, "/ess/leave")
        self.assertEqual(entries[1].moduleCode, "ess")
        self.assertEqual(entries[2].moduleCode, "help")

    def test_first_code_wins_and_blank_codes_are_skipped(self) -> None:
        payload = {"features": [{"code": "a", "name": "First"}, {"code": "a", "name": "Second"}, {"code": "  "}]}

        with self.assertLogs("regaudit.registry", level="WARNING"):
            entries = parse_registry(payload)

        self.assertEqual([(e.featureCode, e.featureName) for e in entries], [("a", "First")])

    def test_empty_document_is_empty_registry(self) -> None:
        self.assertEqual(parse_registry(None), [])

    def test_non_mapping_document_is_a_fetch_error(self) -> None:
        with self.assertRaises(DataFetchError) as ctx:
            parse_registry(["not", "a", "mapping"])

        self.assertEqual(ctx.exception.source, "registry")

    def test_load_reports_missing_and_invalid_files(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(DataFetchError):
                load_registry(Path(tmp) / "absent.yaml")

            broken = Path(tmp) / "broken.yaml"
            broken.write_text("modules: [\n  - code: x\n", encoding="utf-8")
            with self.assertRaises(DataFetchError):
                load_registry(broken)

    def test_bundled_registry_loads(self) -> None:
        entries = load_registry(config.PACKAGE_ROOT / "data" / "feature_registry.yaml")

        codes = {entry.featureCode for entry in entries}
        self.assertIn("ess_leave", codes)
        self.assertEqual(len(codes), len(entries))


if __name__ == "__main__":
    unittest.main()
