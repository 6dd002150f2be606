"""
Unit tests for LLM Router - verifies model routing without LLM calls.

Tests the routing logic hierarchy (Agent > Group > Default),
environment variable overrides, model normalization, and
reasoning-model parameter constraints.

Run with: python -m pytest tests/test_llm_router.py -v
"""

import os

import yaml

from soulscribe.services.llm_router import LLMRouter, get_llm_router, is_reasoning_model, reset_llm_router


def clear_model_env():
    for key in list(os.environ.keys()):
        if key.startswith('TEST_') and key.endswith('_MODEL'):
            del os.environ[key]


class TestLLMRouterHierarchy:
    """Test model resolution hierarchy: Agent > Group > Default"""

    def setup_method(self):
        """Reset LLM Router singleton before each test."""
        reset_llm_router()
        clear_model_env()

    def teardown_method(self):
        """Clean up after each test."""
        reset_llm_router()
        clear_model_env()

    def test_default_model_when_no_overrides(self):
        """Without overrides, agents use default model from YAML."""
        router = LLMRouter()
        for agent in ['writer', 'analyzer']:
            assert router.get_model_for_agent(agent) == 'gpt-4o', f"{agent} should use default model"

    def test_group_override_applies_to_members(self):
        """TEST_REVIEWERS_MODEL applies to the analyzer."""
        os.environ['TEST_REVIEWERS_MODEL'] = 'gpt-4o-mini'
        router = LLMRouter()

        assert router.get_model_for_agent('analyzer') == 'gpt-4o-mini'
        assert router.get_model_for_agent('writer') == 'gpt-4o'

    def test_agent_override_beats_group_override(self):
        """TEST_WRITER_MODEL overrides TEST_WRITERS_MODEL."""
        os.environ['TEST_WRITERS_MODEL'] = 'gpt-4o-mini'
        os.environ['TEST_WRITER_MODEL'] = 'gpt-4.1'
        router = LLMRouter()

        assert router.get_model_for_agent('writer') == 'gpt-4.1', "Agent override should beat group override"
        assert router.get_active_overrides() == {
            'group:writers': 'gpt-4o-mini',
            'agent:writer': 'gpt-4.1',
        }

    def test_unknown_agent_uses_default(self):
        """Unknown agent names should fall back to default model."""
        router = LLMRouter()
        assert router.get_model_for_agent('nonexistent_agent') == 'gpt-4o'

    def test_resolve_model_reports_source(self):
        os.environ['TEST_REVIEWERS_MODEL'] = 'openai/gpt-4o-mini'
        router = LLMRouter()

        assert router.resolve_model('analyzer') == ('gpt-4o-mini', 'group:reviewers')
        assert router.resolve_model('writer') == ('gpt-4o', 'default')

    def test_groups(self):
        router = LLMRouter()
        assert router.list_agents_in_group('writers') == ['writer']
        assert router.list_agents_in_group('reviewers') == ['analyzer']
        assert router.list_all_agents() == ['writer', 'analyzer']

    def test_custom_config_path(self, tmp_path):
        config_path = tmp_path / "models.yaml"
        config_path.write_text(yaml.safe_dump({
            "default": {"model": "openai/gpt-4o-mini", "temperature": 0.5},
            "agents": {"writer": {"display_name": "Scribe"}},
        }))
        router = LLMRouter(str(config_path))

        assert router.get_model_for_agent('writer') == 'gpt-4o-mini'
        assert router.get_agent_display_name('writer') == 'Scribe'
        assert router.get_llm_kwargs('writer')['temperature'] == 0.5


class TestModelConstraints:
    """Test reasoning-model parameter handling."""

    def setup_method(self):
        reset_llm_router()
        clear_model_env()

    def teardown_method(self):
        reset_llm_router()
        clear_model_env()

    def test_standard_model_keeps_sampling_params(self):
        kwargs = LLMRouter().get_llm_kwargs('writer')
        assert kwargs == {'model': 'gpt-4o', 'temperature': 0.85, 'max_tokens': 4000}

    def test_reasoning_model_drops_temperature(self):
        """GPT-5, o1, o3 should not have temperature."""
        os.environ['TEST_WRITER_MODEL'] = 'gpt-5'
        kwargs = LLMRouter().get_llm_kwargs('writer')

        assert 'temperature' not in kwargs, "GPT-5 should not have temperature"
        assert 'max_tokens' not in kwargs
        assert kwargs['max_completion_tokens'] == 4000

    def test_model_override_argument(self):
        kwargs = LLMRouter().get_llm_kwargs('analyzer', model_override='o3-mini')
        assert kwargs['model'] == 'o3-mini'
        assert 'temperature' not in kwargs

    def test_is_reasoning_model(self):
        assert is_reasoning_model('o1-preview')
        assert is_reasoning_model('gpt-5-mini')
        assert not is_reasoning_model('gpt-4o')
        assert not is_reasoning_model(None)


class TestAgentSpecificParams:
    """Test agent-specific parameter values."""

    def setup_method(self):
        reset_llm_router()

    def teardown_method(self):
        reset_llm_router()

    def test_writer_high_temperature(self):
        """Writer should have high temperature (0.85) for creativity."""
        assert LLMRouter().get_llm_kwargs('writer')['temperature'] == 0.85

    def test_analyzer_low_temperature(self):
        """Analyzer should have low temperature (0.2) for consistent scores."""
        kwargs = LLMRouter().get_llm_kwargs('analyzer')
        assert kwargs['temperature'] == 0.2
        assert kwargs['max_tokens'] == 1500

    def test_display_names(self):
        router = LLMRouter()
        assert router.get_agent_display_name('writer') == 'SoulScribe'
        assert router.get_agent_display_name('analyzer') == 'Quality Guardian'
        assert router.get_agent_display_name('unknown') == 'unknown'

    def test_default_block_only_holds_keys_the_router_reads(self):
        """Request timeout comes from Settings, not models.yaml"""
        default_keys = set(LLMRouter().config['default'])
        assert default_keys <= {'model', 'temperature', 'max_tokens'}

    def test_singleton(self):
        assert get_llm_router() is get_llm_router()
