"""
LLM Router - per-agent model and call parameters

Reads soulscribe/config/models.yaml and answers two questions for an agent:
which model it runs on, and which kwargs to hand LLMService.chat_completion.

Model resolution: agent model > group model > default model. Any level can be
overridden from the environment for A/B runs (TEST_<AGENT>_MODEL,
TEST_<GROUP>_MODEL).

Usage:
    from soulscribe.services.llm_router import get_llm_router

    router = get_llm_router()
    kwargs = router.get_llm_kwargs("writer")
    response = await llm.chat_completion(messages=messages, **kwargs)
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "models.yaml"
FALLBACK_MODEL = "gpt-4o"
REASONING_MODEL_MARKERS = ("gpt-5", "o1", "o3", "o4-")
SAMPLING_PARAMS = ("temperature", "top_p", "frequency_penalty", "presence_penalty")
OPTIONAL_PARAMS = ("top_p", "frequency_penalty", "presence_penalty")


def is_reasoning_model(model: Optional[str]) -> bool:
    """OpenAI reasoning models take no sampling parameters"""
    return (model or "").lower().startswith(REASONING_MODEL_MARKERS)


def normalize_model_name(model: Optional[str]) -> Optional[str]:
    """The OpenAI client takes bare names; drop an ``openai/`` routing prefix"""
    if model and model.startswith("openai/"):
        return model[len("openai/"):]
    return model


class LLMRouter:
    """Resolves models and call kwargs per agent from models.yaml"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        with open(self.config_path, 'r') as f:
            self.config = yaml.safe_load(f) or {}
        self.config.setdefault("default", {})
        self.config.setdefault("groups", {})
        self.config.setdefault("agents", {})
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        for section in ("groups", "agents"):
            for name, cfg in self.config[section].items():
                override = os.getenv(f"TEST_{name.upper()}_MODEL")
                if override:
                    cfg["model"] = override
                    logger.info(f"🔬 A/B Override: {section[:-1]} {name} → {override}")

    def _agent(self, agent_name: str) -> dict:
        return self.config["agents"].get(agent_name) or {}

    def resolve_model(self, agent_name: str) -> Tuple[str, str]:
        """
        Resolve an agent's model.

        Returns:
            (model, source) where source is "agent override",
            "group:<name>" or "default"
        """
        agent_model = self._agent(agent_name).get("model")
        if agent_model:
            return normalize_model_name(agent_model), "agent override"

        for group_name, group_cfg in self.config["groups"].items():
            if agent_name in (group_cfg.get("members") or []) and group_cfg.get("model"):
                return normalize_model_name(group_cfg["model"]), f"group:{group_name}"

        default_model = self.config["default"].get("model", FALLBACK_MODEL)
        return normalize_model_name(default_model), "default"

    def get_model_for_agent(self, agent_name: str) -> str:
        return self.resolve_model(agent_name)[0]

    def get_llm_kwargs(self, agent_name: str, model_override: Optional[str] = None) -> dict:
        """
        Build chat-completion kwargs for an agent.

        Agent values win over the default block; optional sampling params
        are only passed when configured. Reasoning-model constraints are
        applied last.
        """
        model = normalize_model_name(model_override) if model_override else self.get_model_for_agent(agent_name)
        agent_cfg = self._agent(agent_name)
        default_cfg = self.config["default"]

        kwargs = {
            "model": model,
            "temperature": agent_cfg.get("temperature", default_cfg.get("temperature", 0.7)),
            "max_tokens": agent_cfg.get("max_tokens", default_cfg.get("max_tokens", 4000)),
        }
        kwargs.update({p: agent_cfg[p] for p in OPTIONAL_PARAMS if agent_cfg.get(p) is not None})
        return self.apply_model_constraints(model, kwargs)

    def apply_model_constraints(self, model: str, kwargs: dict) -> dict:
        """
        Reasoning models reject sampling params and take
        ``max_completion_tokens`` in place of ``max_tokens``.

        The writer agent calls this again after setting its per-attempt
        temperature and token budget.
        """
        if not is_reasoning_model(model):
            return kwargs

        kwargs["max_completion_tokens"] = kwargs.pop("max_tokens", 16384)
        for param in SAMPLING_PARAMS:
            kwargs.pop(param, None)
        return kwargs

    def get_agent_display_name(self, agent_name: str) -> str:
        return self._agent(agent_name).get("display_name", agent_name)

    def get_agent_description(self, agent_name: str) -> str:
        return self._agent(agent_name).get("description", "")

    def list_agents_in_group(self, group_name: str) -> List[str]:
        return list((self.config["groups"].get(group_name) or {}).get("members") or [])

    def list_all_agents(self) -> List[str]:
        return list(self.config["agents"])

    def get_active_overrides(self) -> Dict[str, str]:
        """Models set explicitly on a group or agent, keyed "group:<name>" / "agent:<name>" """
        overrides = {}
        for section, prefix in (("groups", "group"), ("agents", "agent")):
            for name, cfg in self.config[section].items():
                if cfg.get("model"):
                    overrides[f"{prefix}:{name}"] = cfg["model"]
        return overrides

    def log_configuration(self):
        logger.info("📋 LLM Router Configuration:")
        for name, model in self.get_active_overrides().items():
            logger.info(f"  🔄 Override {name} → {model}")
        for agent_name in self.list_all_agents():
            model, source = self.resolve_model(agent_name)
            logger.info(f"  🤖 {self.get_agent_display_name(agent_name)} ({agent_name}): {model} [{source}]")


_llm_router: Optional[LLMRouter] = None


def get_llm_router() -> LLMRouter:
    global _llm_router
    if _llm_router is None:
        _llm_router = LLMRouter()
    return _llm_router


def init_llm_router(config_path: Optional[str] = None) -> LLMRouter:
    """Replace the shared router, e.g. with a custom models.yaml"""
    global _llm_router
    _llm_router = LLMRouter(config_path)
    return _llm_router


def reset_llm_router():
    """Drop the shared router (tests)"""
    global _llm_router
    _llm_router = None
