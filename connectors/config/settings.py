"""Connector settings using Pydantic Settings.

Configuration is loaded from:
1. Environment variables (highest priority)
2. .env file
3. Default values (lowest priority)

Adapters fall back on these values whenever the matching keyword argument
is omitted, e.g. ``ZhipuChatModel(model="glm-4-flash")`` reads the API key
from ``ZHIPU_API_KEY``.
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MilvusSettings(BaseSettings):
    """Milvus indexer/retriever settings.

    All settings can be overridden via environment variables with prefix MILVUS_
    Example: MILVUS_COLLECTION=my_docs
    """
    model_config = SettingsConfigDict(
        env_prefix="MILVUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    uri: str = Field(
        default="http://localhost:19530",
        description="Milvus server URI"
    )
    token: str = Field(
        default="",
        description="Milvus token (user:password or API key)"
    )
    db_name: str = Field(
        default="",
        description="Milvus database name (empty = default database)"
    )
    collection: str = Field(
        default="eino_collection",
        description="Default collection name"
    )
    description: str = Field(
        default="the collection for eino",
        description="Description used when the collection is created"
    )
    vector_field: str = Field(
        default="vector",
        description="Dense vector field name"
    )
    sparse_vector_field: str = Field(
        default="sparse_vector",
        description="Sparse vector field name used by retrievers"
    )
    metric_type: str = Field(
        default="L2",
        description="Dense metric type (L2/IP/COSINE)"
    )
    sparse_metric_type: str = Field(
        default="IP",
        description="Sparse metric type (IP/BM25)"
    )
    consistency_level: str = Field(
        default="Bounded",
        description="Consistency level (Strong/Session/Bounded/Eventually)"
    )
    top_k: int = Field(
        default=5,
        description="Number of documents to retrieve"
    )


class PGVectorSettings(BaseSettings):
    """PostgreSQL + pgvector settings."""

    model_config = SettingsConfigDict(
        env_prefix="PGVECTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    dsn: str = Field(
        default="",
        description="PostgreSQL connection string (used when no connection is passed)",
        validation_alias=AliasChoices("PGVECTOR_DSN", "DATABASE_URL"),
    )
    table_name: str = Field(
        default="documents",
        description="Table holding documents"
    )
    batch_size: int = Field(
        default=10,
        description="Documents per insert transaction"
    )
    top_k: int = Field(
        default=5,
        description="Number of documents to retrieve"
    )
    distance_function: str = Field(
        default="cosine",
        description="Distance function (cosine/l2/inner_product)"
    )


class QdrantSettings(BaseSettings):
    """Qdrant settings."""

    model_config = SettingsConfigDict(
        env_prefix="QDRANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    url: str = Field(
        default="http://localhost:6333",
        description="Qdrant server URL"
    )
    api_key: str = Field(
        default="",
        description="Qdrant API key (optional)"
    )
    collection: str = Field(
        default="eino_collection",
        description="Default collection name"
    )
    batch_size: int = Field(
        default=10,
        description="Points per upsert call"
    )
    top_k: int = Field(
        default=5,
        description="Number of documents to retrieve"
    )


class ElasticsearchSettings(BaseSettings):
    """Elasticsearch 8 settings."""

    model_config = SettingsConfigDict(
        env_prefix="ES_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = Field(
        default="http://localhost:9200",
        description="Elasticsearch host"
    )
    user: str = Field(
        default="",
        description="Elasticsearch user (optional)"
    )
    password: str = Field(
        default="",
        description="Elasticsearch password (optional)"
    )
    batch_size: int = Field(
        default=5,
        description="Documents per embedding/bulk batch"
    )
    top_k: int = Field(
        default=10,
        description="Number of documents to retrieve"
    )


class PineconeSettings(BaseSettings):
    """Pinecone settings."""

    model_config = SettingsConfigDict(
        env_prefix="PINECONE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str = Field(
        default="",
        description="Pinecone API key"
    )
    index_name: str = Field(
        default="eino-index",
        description="Index name"
    )
    cloud: str = Field(
        default="aws",
        description="Serverless cloud provider"
    )
    region: str = Field(
        default="us-east-1",
        description="Serverless region"
    )
    metric: str = Field(
        default="cosine",
        description="Index metric (cosine/euclidean/dotproduct)"
    )
    dimension: int = Field(
        default=1536,
        description="Vector dimension"
    )
    batch_size: int = Field(
        default=200,
        description="Vectors per upsert request"
    )
    max_concurrency: int = Field(
        default=100,
        description="Maximum parallel upsert requests"
    )
    top_k: int = Field(
        default=5,
        description="Number of documents to retrieve"
    )


class ArkSettings(BaseSettings):
    """Volcengine Ark settings."""

    model_config = SettingsConfigDict(
        env_prefix="ARK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(
        default="https://ark.cn-beijing.volces.com/api/v3",
        description="Ark API base URL"
    )
    region: str = Field(
        default="cn-beijing",
        description="Ark region"
    )
    api_key: str = Field(
        default="",
        description="Ark API key (takes precedence over AK/SK)"
    )
    access_key: str = Field(
        default="",
        description="Volcengine access key"
    )
    secret_key: str = Field(
        default="",
        description="Volcengine secret key"
    )
    model: str = Field(
        default="",
        description="Endpoint ID / model name"
    )
    timeout: int = Field(
        default=600,
        description="Request timeout in seconds"
    )
    retry_times: int = Field(
        default=2,
        description="SDK retry times"
    )


class GeminiSettings(BaseSettings):
    """Google Gemini settings."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str = Field(
        default="",
        description="Gemini API key",
        validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    )
    model: str = Field(
        default="gemini-2.0-flash",
        description="Model name"
    )
    vertexai: bool = Field(
        default=False,
        description="Use Vertex AI instead of the Gemini developer API"
    )
    project: str = Field(
        default="",
        description="Google Cloud project (Vertex AI)"
    )
    location: str = Field(
        default="",
        description="Google Cloud location (Vertex AI)"
    )


class HunyuanSettings(BaseSettings):
    """Tencent Hunyuan settings."""

    model_config = SettingsConfigDict(
        env_prefix="HUNYUAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    secret_id: str = Field(
        default="",
        description="Tencent Cloud SecretId"
    )
    secret_key: str = Field(
        default="",
        description="Tencent Cloud SecretKey"
    )
    region: str = Field(
        default="ap-guangzhou",
        description="Tencent Cloud region"
    )
    model: str = Field(
        default="",
        description="Model name (e.g. hunyuan-lite)"
    )


class OpenRouterSettings(BaseSettings):
    """OpenRouter settings."""

    model_config = SettingsConfigDict(
        env_prefix="OPENROUTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    base_url: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API base URL"
    )
    api_key: str = Field(
        default="",
        description="OpenRouter API key"
    )
    model: str = Field(
        default="",
        description="Default model"
    )
    timeout: int = Field(
        default=60,
        description="Request timeout in seconds"
    )


class ZhipuSettings(BaseSettings):
    """Zhipu AI settings."""

    model_config = SettingsConfigDict(
        env_prefix="ZHIPU_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    base_url: str = Field(
        default="https://open.bigmodel.cn/api/paas/v4/",
        description="Zhipu OpenAI-compatible endpoint"
    )
    api_key: str = Field(
        default="",
        description="Zhipu API key"
    )
    model: str = Field(
        default="glm-4-flash",
        description="Default model"
    )
    timeout: int = Field(
        default=60,
        description="Request timeout in seconds"
    )


class OpenAISettings(BaseSettings):
    """OpenAI Responses API settings."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="OpenAI API key"
    )
    base_url: str = Field(
        default="",
        description="Custom base URL (empty = SDK default)"
    )
    model: str = Field(
        default="gpt-4o-mini",
        description="Default model"
    )
    timeout: int = Field(
        default=60,
        description="Request timeout in seconds"
    )


class BingSettings(BaseSettings):
    """Bing Web Search settings."""

    model_config = SettingsConfigDict(
        env_prefix="BING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    api_key: str = Field(
        default="",
        description="Bing subscription key"
    )
    search_url: str = Field(
        default="https://api.bing.microsoft.com/v7.0/search",
        description="Bing Web Search endpoint"
    )
    timeout: int = Field(
        default=30,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        description="Retries on transport errors and HTTP 429"
    )
    cache_ttl: int = Field(
        default=300,
        description="Result cache TTL in seconds"
    )


class TEISettings(BaseSettings):
    """Text Embeddings Inference settings."""

    model_config = SettingsConfigDict(
        env_prefix="TEI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    endpoint_url: str = Field(
        default="http://tei:80",
        description="TEI server URL"
    )
    timeout: int = Field(
        default=30,
        description="Request timeout in seconds"
    )


# Global settings instances
milvus_settings = MilvusSettings()
pgvector_settings = PGVectorSettings()
qdrant_settings = QdrantSettings()
es_settings = ElasticsearchSettings()
pinecone_settings = PineconeSettings()
ark_settings = ArkSettings()
gemini_settings = GeminiSettings()
hunyuan_settings = HunyuanSettings()
openrouter_settings = OpenRouterSettings()
zhipu_settings = ZhipuSettings()
openai_settings = OpenAISettings()
bing_settings = BingSettings()
tei_settings = TEISettings()


__all__ = [
    "MilvusSettings",
    "PGVectorSettings",
    "QdrantSettings",
    "ElasticsearchSettings",
    "PineconeSettings",
    "ArkSettings",
    "GeminiSettings",
    "HunyuanSettings",
    "OpenRouterSettings",
    "ZhipuSettings",
    "OpenAISettings",
    "BingSettings",
    "TEISettings",
    "milvus_settings",
    "pgvector_settings",
    "qdrant_settings",
    "es_settings",
    "pinecone_settings",
    "ark_settings",
    "gemini_settings",
    "hunyuan_settings",
    "openrouter_settings",
    "zhipu_settings",
    "openai_settings",
    "bing_settings",
    "tei_settings",
]
