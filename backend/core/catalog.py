"""Schema and collection definitions created for every new tenant."""
from __future__ import annotations

RELATIONAL_SCHEMAS: dict[str, str] = {
    "call_history": """
        CREATE TABLE IF NOT EXISTS call_history (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id VARCHAR(255) NOT NULL,
            customer_id VARCHAR(255),
            agent_id VARCHAR(255),
            call_start TIMESTAMP,
            call_end TIMESTAMP,
            call_duration INTEGER,
            transcript TEXT,
            sentiment VARCHAR(50),
            resolution_status VARCHAR(50),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "call_scripts": """
        CREATE TABLE IF NOT EXISTS call_scripts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id VARCHAR(255) NOT NULL,
            workspace_id VARCHAR(255),
            script_name VARCHAR(255),
            script_content TEXT,
            category VARCHAR(255),
            is_active BOOLEAN DEFAULT TRUE,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
    "knowledge_base": """
        CREATE TABLE IF NOT EXISTS knowledge_base (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            tenant_id VARCHAR(255) NOT NULL,
            workspace_id VARCHAR(255),
            title VARCHAR(500),
            content TEXT,
            category VARCHAR(255),
            tags TEXT[],
            embedding_vector FLOAT8[],
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """,
}

DOCUMENT_COLLECTIONS: list[str] = ["kms_documents", "kms_categories", "advisor_templates"]

# collection -> named index key specs (1 ascending, -1 descending, "text" full text)
DOCUMENT_INDEXES: dict[str, dict[str, dict[str, object]]] = {
    "kms_documents": {
        "tenant_workspace": {"tenant_id": 1, "workspace_id": 1},
        "fulltext": {"title": "text", "content": "text"},
        "upload_date": {"metadata.upload_date": -1},
    },
    "kms_categories": {
        "tenant_workspace": {"tenant_id": 1, "workspace_id": 1},
        "order": {"order": 1},
    },
    "advisor_templates": {
        "tenant_workspace": {"tenant_id": 1, "workspace_id": 1},
        "trigger_keywords": {"trigger_conditions.keywords": 1},
    },
}


def index_names() -> list[str]:
    return [f"{collection}.{name}" for collection, specs in DOCUMENT_INDEXES.items() for name in specs]
