"""
Tests for engine configuration loading.

Verifies:
- Packaged defaults load and match the dataclass defaults
- Override files merge over the defaults (prefix tables merge per key)
- Invalid keys, policies, widths and prefixes are refused
- The checksum identifies the effective configuration
- Number width and prefixes flow into document numbers
"""

import pytest
import yaml

from erp_config import EngineConfig, get_active_config, load_config_file
from erp_config.loader import load_yaml_file
from erp_kernel.domain.documents import DocumentType, OverPaymentPolicy
from erp_services import DocumentService


@pytest.fixture
def write_yaml(tmp_path):
    def _write(data, name="override.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
        return path
    return _write


class TestDefaults:

    def test_packaged_defaults_equal_dataclass_defaults(self):
        assert get_active_config() == EngineConfig.with_defaults()

    def test_every_document_type_has_a_prefix(self):
        config = get_active_config()
        assert set(config.number_prefixes) == set(DocumentType)

    def test_checksum_stable(self):
        assert get_active_config().checksum == get_active_config().checksum

    def test_config_trace_logged(self, captured_logs):
        get_active_config()
        record = next(r for r in captured_logs() if r["message"] == "ERP_CONFIG_TRACE")
        assert record["overpayment_policy"] == "reject"
        assert len(record["checksum"]) == 64


class TestOverrides:

    def test_override_file(self, write_yaml):
        path = write_yaml({"overpayment_policy": "CLAMP", "number_prefixes": {"purchase_order": "PUR"}})
        config = get_active_config(path)
        assert config.overpayment_policy == OverPaymentPolicy.CLAMP
        assert config.number_prefixes[DocumentType.PURCHASE_ORDER] == "PUR"
        assert config.number_prefixes[DocumentType.SALES_ORDER] == "SO"
        assert config.number_width == 6

    def test_override_changes_checksum(self, write_yaml):
        path = write_yaml({"number_width": 8})
        assert get_active_config(path).checksum != get_active_config().checksum

    def test_override_default_warehouse(self, write_yaml):
        assert get_active_config(write_yaml({"default_warehouse": "WEST"})).default_warehouse == "WEST"

    def test_load_single_file(self, write_yaml):
        config = load_config_file(write_yaml({"invoice_requires_receipt": False}))
        assert config.invoice_requires_receipt is False
        assert config.checksum is not None

    def test_empty_file_means_defaults(self, write_yaml):
        assert load_config_file(write_yaml("")) == EngineConfig.with_defaults()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:

    @pytest.mark.parametrize("data, message", [
        ({"colour": "blue"}, "Unknown configuration keys"),
        ({"overpayment_policy": "refund"}, "Unknown overpayment_policy"),
        ({"number_width": 0}, "number_width"),
        ({"number_width": 13}, "number_width"),
        ({"number_width": "6"}, "integer"),
        ({"number_prefixes": {"timesheet": "TS"}}, "Unknown document type"),
        ({"number_prefixes": {"sales_order": "S-O"}}, "Invalid number prefix"),
        ({"default_warehouse": "  "}, "default_warehouse"),
    ])
    def test_invalid_values(self, data, message):
        with pytest.raises(ValueError, match=message):
            EngineConfig.from_dict(data)

    def test_top_level_must_be_mapping(self, write_yaml):
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(write_yaml("- a\n- b\n"))

    def test_malformed_yaml(self, write_yaml):
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(write_yaml("key: [unclosed\n"))


class TestNumberFormatting:

    def test_width_and_prefix_used(self, session, deterministic_clock, engine_config, customer, test_actor_id):
        config = engine_config.merged({"number_width": 3, "number_prefixes": {"sales_order": "ORD"}})
        service = DocumentService(session, deterministic_clock, config)
        so = service.create(DocumentType.SALES_ORDER, test_actor_id, party_id=customer.id)
        assert so.number == "ORD-2024-001"
