"""Tests for swarm_manager.labels module."""

import pytest


class TestParseLabels:
    """Tests for label query string parsing."""

    def test_empty(self):
        """Test blank input yields no labels."""
        from swarm_manager.labels import parse_labels
        assert parse_labels("") == {}
        assert parse_labels("   ") == {}

    def test_comma_separated_values(self):
        """Test values are split on commas."""
        from swarm_manager.labels import parse_labels
        labels = parse_labels("env=prod,staging&tier=web")
        assert labels == {"env": ["prod", "staging"], "tier": ["web"]}

    def test_label_without_value(self):
        """Test a field without = is a label with no values."""
        from swarm_manager.labels import parse_labels
        assert parse_labels("gpu&tier=web") == {"gpu": [], "tier": ["web"]}

    def test_repeated_key_accumulates(self):
        """Test repeated keys collect all values."""
        from swarm_manager.labels import parse_labels
        assert parse_labels("zone=a&zone=b") == {"zone": ["a", "b"]}

    def test_percent_escapes(self):
        """Test URL escapes are decoded."""
        from swarm_manager.labels import parse_labels
        assert parse_labels("team=data%20eng") == {"team": ["data eng"]}

    def test_semicolon_rejected(self):
        """Test semicolon separators are malformed."""
        from swarm_manager.errors import LabelError
        from swarm_manager.labels import parse_labels
        with pytest.raises(LabelError):
            parse_labels("env=prod;tier=web")

    def test_bad_escape_rejected(self):
        """Test invalid percent escapes are malformed."""
        from swarm_manager.errors import LabelError
        from swarm_manager.labels import parse_labels
        with pytest.raises(LabelError):
            parse_labels("env=%zz")

    def test_empty_key_rejected(self):
        """Test a field with no name is malformed."""
        from swarm_manager.errors import ConfigurationError
        from swarm_manager.labels import parse_labels
        with pytest.raises(ConfigurationError):
            parse_labels("=prod")


class TestFormatLabelOptions:
    """Tests for docker node update label arguments."""

    def test_format(self):
        """Test label mapping becomes --label-add pairs."""
        from swarm_manager.labels import format_label_options
        options = format_label_options({"env": ["prod", "staging"], "gpu": []})
        assert options == ["--label-add", "env=prod,staging", "--label-add", "gpu"]
