"""Model-assisted mapping through the completion gateway.

Only runs when the gateway is configured and the session budget still has
room. Proposals are checked against the schema and the actual source
columns; anything the model invents is dropped.
"""

from __future__ import annotations

import json
import logging
import time

from import_mapper.llm.gateway import (
    ChatMessage,
    CompletionGateway,
    CompletionOptions,
    CompletionRequest,
)
from import_mapper.llm.replies import parse_mapping_reply
from import_mapper.mapping.models import FieldMapping, MappingMetadata, StrategyResult
from import_mapper.mapping.schema import TargetSchema
from import_mapper.mapping.similarity import round_half_up
from import_mapper.mapping.strategies.base import MappingContext, build_result

logger = logging.getLogger(__name__)

MIN_LLM_CONFIDENCE = 40
MAX_LLM_CONFIDENCE = 89


def build_system_prompt(schema: TargetSchema) -> str:
    targets = "\n".join(
        f"- {name} ({field.type}{', required' if field.required else ''}): {field.description}"
        for name, field in schema.items()
    )
    return (
        "You map spreadsheet columns onto a product schema.\n"
        f"Target fields:\n{targets}\n\n"
        'Reply with JSON only: {"mappings": [{"sourceField": "...", "targetField": "...", '
        '"confidence": 0-100, "reasoning": "..."}]}. '
        'Use "unmapped" as targetField when confidence would be below 30.'
    )


def build_user_prompt(context: MappingContext, sample_rows: int) -> str:
    fields = "\n".join(
        f"- {field.name} ({field.data_type}, {field.null_percentage:.0f}% empty): "
        f"{', '.join(str(value) for value in field.sample_values[:3])}"
        for field in context.source_fields
    )
    samples = json.dumps(context.extracted.sample_data[:sample_rows], default=str)
    return f"Source fields:\n{fields}\n\nSample rows:\n{samples}"


class LLMMappingStrategy:
    name = "llm"

    def __init__(
        self,
        gateway: CompletionGateway,
        sample_rows: int = 3,
        max_tokens: int | None = None,
    ) -> None:
        self._gateway = gateway
        self._sample_rows = sample_rows
        self._max_tokens = max_tokens or gateway.config.max_tokens

    async def propose(self, context: MappingContext) -> StrategyResult:
        start = time.perf_counter()
        if not self._gateway.is_available:
            return build_result(self.name, [], 0.0)

        request = CompletionRequest(
            messages=[
                ChatMessage(role="system", content=build_system_prompt(context.schema)),
                ChatMessage(role="user", content=build_user_prompt(context, self._sample_rows)),
            ],
            max_tokens=self._max_tokens,
            temperature=self._gateway.config.temperature,
        )

        async with context.budget.lock:
            remaining = context.budget.remaining
            if remaining <= 0:
                logger.info("Skipping LLM mapping: session budget exhausted")
                return build_result(self.name, [], (time.perf_counter() - start) * 1000)
            response = await self._gateway.create_completion(
                request, CompletionOptions(cost_limit=remaining)
            )
            cost = response.usage.cost if response.usage else 0.0
            context.budget.record(cost)

        elapsed_ms = (time.perf_counter() - start) * 1000
        if not response.success:
            logger.info("LLM mapping unavailable: %s", response.error)
            return build_result(self.name, [], elapsed_ms, cost)

        reply = parse_mapping_reply(response.content)
        source_names = {field.name for field in context.source_fields}
        by_name = {field.name: field for field in context.source_fields}
        mappings = []
        for proposal in reply.proposals:
            if proposal.source_field not in source_names:
                continue
            if proposal.target_field not in context.schema:
                continue
            if proposal.confidence < context.min_confidence:
                continue
            confidence = max(
                MIN_LLM_CONFIDENCE,
                min(MAX_LLM_CONFIDENCE, round_half_up(proposal.confidence)),
            )
            source = by_name[proposal.source_field]
            mappings.append(
                FieldMapping(
                    source_field=proposal.source_field,
                    target_field=proposal.target_field,
                    confidence=confidence,
                    strategy="llm",
                    reasoning=proposal.reasoning or "Model suggestion",
                    metadata=MappingMetadata(
                        data_type_match=(
                            proposal.data_type_match
                            if proposal.data_type_match is not None
                            else context.type_match(source, proposal.target_field)
                        ),
                        transformation_required=proposal.transformation_required,
                        score=confidence,
                    ),
                )
            )
        return build_result(self.name, mappings, elapsed_ms, cost)
