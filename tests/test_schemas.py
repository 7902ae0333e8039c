"""Tests for chain definition documents."""

import pytest
from pydantic import ValidationError

from rulechain.rule_engine.chain_executor import ChainExecutor
from rulechain.schemas.rule_chain import ChainDocument


DOCUMENT = {
    "id": 12,
    "name": "Cooling",
    "organizationId": 3,
    "maxRetries": 2,
    "nodes": [
        {
            "id": 1,
            "type": "filter",
            "config": {"field": "temperature", "operator": ">", "value": 30},
            "nextNodeId": 2,
        },
        {
            "id": 2,
            "type": "transform",
            "config": '{"field": "temperature", "operation": "add", "operand": 5}',
        },
    ],
}


class TestChainDocument:
    """Test ChainDocument parsing and conversion."""

    def test_camel_case_keys(self):
        doc = ChainDocument.model_validate(DOCUMENT)
        assert doc.organization_id == 3
        assert doc.max_retries == 2
        assert doc.nodes[0].next_node_id == 2

    def test_snake_case_keys(self):
        doc = ChainDocument.model_validate({"id": 1, "name": "x", "organization_id": 4})
        assert doc.organization_id == 4

    def test_to_engine(self):
        chain, nodes = ChainDocument.model_validate(DOCUMENT).to_engine()
        assert chain.id == 12
        assert chain.tenant_id == 3
        assert chain.retry_policy.max_attempts == 2
        assert [n.id for n in nodes] == [1, 2]
        assert all(n.chain_id == 12 for n in nodes)

    def test_invalid_retries(self):
        with pytest.raises(ValidationError):
            ChainDocument.model_validate({"id": 1, "name": "x", "maxRetries": 0})

    @pytest.mark.asyncio
    async def test_document_executes(self):
        chain, nodes = ChainDocument.model_validate(DOCUMENT).to_engine()
        result = await ChainExecutor().execute(chain, nodes, {"temperature": 35})
        assert result.final_record == {"temperature": 40}
