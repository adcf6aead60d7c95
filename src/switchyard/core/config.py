"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class LLMConfig(BaseSettings):
    """Model backend configuration."""

    model_config = {"env_prefix": "SWITCHYARD_LLM_"}

    provider: Literal["mock", "bedrock"] = "mock"
    bedrock_model: str = "anthropic.claude-3-haiku-20240307-v1:0"
    classifier_model: str = "anthropic.claude-3-haiku-20240307-v1:0"
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack / VPC endpoint override
    max_tokens: int = 1000
    temperature: float = 0.0
    top_p: float = 0.9
    stop_sequences: list[str] = []


class GuardrailConfig(BaseSettings):
    """Bedrock Guardrails configuration. Disabled when guardrail_id is empty."""

    model_config = {"env_prefix": "SWITCHYARD_GUARDRAIL_"}

    guardrail_id: str = ""
    version: str = "DRAFT"


class RetrievalConfig(BaseSettings):
    """Knowledge base retrieval configuration. Disabled when knowledge_base_id is empty."""

    model_config = {"env_prefix": "SWITCHYARD_RETRIEVAL_"}

    knowledge_base_id: str = ""
    number_of_results: int = 5
    timeout: float = 5.0


class OrchestratorConfig(BaseSettings):
    """Routing and turn-processing behaviour."""

    model_config = {"env_prefix": "SWITCHYARD_ORCHESTRATOR_"}

    max_message_pairs_per_agent: int = 100
    classifier_history_turns: int = 10
    min_score: float = 0.0
    default_agent_id: str | None = None
    no_selected_agent_message: str = (
        "I'm sorry, I couldn't determine how to handle your request. "
        "Could you please rephrase it?"
    )
    general_routing_error_message: str = (
        "An error occurred while processing your request. Please try again later."
    )
    log_agent_chat: bool = False
    log_classifier_output: bool = False
    invocation_timeout: float = 120.0
    stream_idle_timeout: float = 60.0
    tool_timeout: float = 30.0
    max_tool_rounds: int = 20
    strict_templates: bool = False
    max_idle_sessions: int = 1024  # runtime session entries kept once their turns finish


class StorageConfig(BaseSettings):
    """Conversation storage selection."""

    model_config = {"env_prefix": "SWITCHYARD_STORAGE_"}

    backend: Literal["memory", "dynamodb", "redis"] = "memory"
    ttl_seconds: int = 0  # 0 disables expiry


class DynamoDBConfig(BaseSettings):
    """DynamoDB configuration."""

    model_config = {"env_prefix": "SWITCHYARD_DYNAMO_"}

    table_name: str = "switchyard-conversations"
    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class RedisConfig(BaseSettings):
    """Redis configuration."""

    model_config = {"env_prefix": "SWITCHYARD_REDIS_"}

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    key_prefix: str = "switchyard"


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "SWITCHYARD_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"

    llm: LLMConfig = LLMConfig()
    guardrail: GuardrailConfig = GuardrailConfig()
    retrieval: RetrievalConfig = RetrievalConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    storage: StorageConfig = StorageConfig()
    dynamodb: DynamoDBConfig = DynamoDBConfig()
    redis: RedisConfig = RedisConfig()
