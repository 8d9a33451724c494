# tests/integration/test_properties.py — v1
"""Cross-component guarantees: determinism, thresholds, injectivity,
bounded memory, streaming equivalence and provider rate limits.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import random

import pytest

from docmapper.config.settings import Settings
from docmapper.core.errors import RateLimitExceeded
from docmapper.core.models import TargetSchema
from docmapper.extraction.chunk_source import ChunkSource
from docmapper.extraction.csv_extractor import CsvExtractor
from docmapper.extraction.json_extractor import JsonLinesExtractor
from docmapper.extraction.txt_extractor import TxtExtractor
from docmapper.llm.gateway import ProviderGateway
from docmapper.llm.profiles import ProviderLimits, ProviderProfile
from docmapper.llm.prompts import EscalationCandidate, MappingRequest
from docmapper.mapping.similarity_matcher import SimilarityMatcher
from docmapper.pipeline.orchestrator import MappingOrchestrator
from fakes import FakeLLMClient, collect, suggestion

SOURCES = ["emp_id", "full_name", "age", "hired_on", "dept"]
TARGETS = ["Id", "FullName", "Age", "HireDate", "Department"]


def _match_set(outcome) -> set[tuple[str, str, float, str]]:
    return {(m.source_field, m.target_field, m.score, m.match_kind) for m in outcome.matches}


class TestDeterminism:
    def test_repeated_runs(self):
        schema = TargetSchema.from_names(TARGETS)
        matcher = SimilarityMatcher(80)
        first = _match_set(matcher.match(SOURCES, schema))
        for _ in range(5):
            assert _match_set(matcher.match(SOURCES, schema)) == first

    def test_permutations_give_same_set(self):
        matcher = SimilarityMatcher(80)
        expected = _match_set(matcher.match(SOURCES, TargetSchema.from_names(TARGETS)))
        assert {(s, t) for s, t, _, _ in expected} == {
            ("emp_id", "Id"), ("full_name", "FullName"), ("age", "Age"),
        }
        for sources in itertools.permutations(SOURCES):
            assert _match_set(matcher.match(list(sources), TargetSchema.from_names(TARGETS))) == expected

    def test_randomized_target_order(self):
        rng = random.Random(1234)
        matcher = SimilarityMatcher(80)
        expected = _match_set(matcher.match(SOURCES, TargetSchema.from_names(TARGETS)))
        for _ in range(20):
            sources, targets = SOURCES[:], TARGETS[:]
            rng.shuffle(sources)
            rng.shuffle(targets)
            assert _match_set(matcher.match(sources, TargetSchema.from_names(targets))) == expected


class TestThresholdBoundary:
    @pytest.mark.asyncio
    async def test_session_accepts_at_threshold(self, make_csv_source):
        settings = Settings(_env_file=None, fuzzy_match_threshold=80)
        source, extractor = make_csv_source(b"abcde\nx\n", settings)
        final = (await collect(MappingOrchestrator(source, extractor, ["abcdx"], settings=settings).run()))[-1]
        assert [(m.source_field, m.target_field) for m in final.matches] == [("abcde", "abcdx")]
        assert not [w for w in final.all_warnings if w.kind == "unmapped_target"]

    @pytest.mark.asyncio
    async def test_session_rejects_one_below(self, make_csv_source):
        settings = Settings(_env_file=None, fuzzy_match_threshold=81)
        source, extractor = make_csv_source(b"abcde\nx\n", settings)
        final = (await collect(MappingOrchestrator(source, extractor, ["abcdx"], settings=settings).run()))[-1]
        assert final.matches == []
        unmapped = [w for w in final.all_warnings if w.kind == "unmapped_target"]
        assert len(unmapped) == 1
        assert unmapped[0].field == "abcdx"


class TestInjectivity:
    @pytest.mark.asyncio
    async def test_fields_arriving_across_batches(self):
        lines = [
            {"name": "a"},
            {"Name ": "b"},
            {"full_name": "c", "customer_name": "d"},
            {"cust_name": "e", "NAME": "f"},
            {"fullname": "g"},
        ]
        data = "\n".join(json.dumps(line) for line in lines).encode()
        settings = Settings(
            _env_file=None, row_batch_size=1, fuzzy_match_threshold=50, escalation_threshold=0.5,
        )
        extractor = JsonLinesExtractor()
        source = ChunkSource.open(
            data, "application/x-ndjson", settings=settings, mode=extractor.source_mode,
        )
        orch = MappingOrchestrator(
            source, extractor, ["Name", "FullName", "CustomerName"], settings=settings,
        )
        chunks = await collect(orch.run())
        assert len(chunks) == len(lines)
        for chunk in chunks:
            targets = [m.target_field for m in chunk.matches]
            assert len(targets) == len(set(targets))
        final = chunks[-1]
        assert {m.source_field: m.target_field for m in final.matches}["name"] == "Name"
        assert len(final.matches) == 3

    @pytest.mark.asyncio
    async def test_ai_cannot_steal_owned_target(
        self, make_csv_source, employee_csv, employee_schema, fast_settings, fake_profile,
    ):
        # Id is owned by emp_id (fuzzy 0.89) and offered to the provider.
        client = FakeLLMClient([suggestion(("hired_on", "Id", 0.99))])
        gateway = ProviderGateway(fast_settings)
        gateway.register(fake_profile, client)
        source, extractor = make_csv_source(employee_csv)
        orch = MappingOrchestrator(
            source, extractor, employee_schema, settings=fast_settings,
            gateway=gateway, smart_mapping=True,
        )
        final = (await collect(orch.run()))[-1]
        owners = [m.source_field for m in final.matches if m.target_field == "Id"]
        assert owners == ["emp_id"]
        assert any(w.kind == "ai_rejected" and w.field == "hired_on" for w in final.all_warnings)


class TestMemoryBound:
    @pytest.mark.asyncio
    async def test_slow_consumer_never_exceeds_ceiling(self):
        settings = Settings(
            _env_file=None, batch_size_bytes=1024, max_memory_usage_bytes=4096, row_batch_size=100,
        )
        body = "id,name,score\n" + "".join(f"{i},name-{i:06d},{i % 97}\n" for i in range(3000))
        data = body.encode()
        assert len(data) > settings.max_memory_usage_bytes * 10

        extractor = CsvExtractor()
        source = ChunkSource.open(data, "text/csv", settings=settings, mode=extractor.source_mode)
        orch = MappingOrchestrator(source, extractor, ["Id", "Name", "Score"], settings=settings)

        rows = 0
        async for chunk in orch.run():
            assert source.buffered_bytes <= settings.max_memory_usage_bytes
            rows += len(chunk.records)
            await asyncio.sleep(0.001)
        assert rows == 3000
        assert source.peak_buffered_bytes <= settings.max_memory_usage_bytes
        assert source.bytes_consumed == len(data)

    def test_oversized_line_fails_instead_of_buffering(self):
        settings = Settings(_env_file=None, batch_size_bytes=64, max_memory_usage_bytes=256)
        source = ChunkSource.open(b"a\n" + b"x" * 1000 + b"\n", "text/csv", settings=settings)
        chunks = list(source)
        assert chunks[-1].is_fatal
        assert source.peak_buffered_bytes <= 256


class TestStreamingEquivalence:
    TEXT = "Ünïcode — line one\nzweite Zeile: ✓\n第三行\n" * 40

    @pytest.mark.parametrize("batch_size", [1, 3, 7, 64, 4096])
    def test_blocks_reassemble(self, batch_size):
        settings = Settings(_env_file=None, batch_size_bytes=batch_size, max_memory_usage_bytes=8192)
        data = self.TEXT.encode("utf-8")
        source = ChunkSource.open(data, "application/octet-stream", settings=settings, mode="blocks")
        chunks = list(source)
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert "".join(c.text for c in chunks) == self.TEXT
        assert sum(c.byte_count for c in chunks) == len(data)
        assert all("�" not in c.text for c in chunks)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rows", [1, 2, 5, 100])
    async def test_text_through_pipeline(self, rows):
        settings = Settings(_env_file=None, row_batch_size=rows)
        data = self.TEXT.encode("utf-8")
        extractor = TxtExtractor()
        source = ChunkSource.open(data, "text/plain", settings=settings, mode=extractor.source_mode)
        chunks = await collect(MappingOrchestrator(source, extractor, ["Title"], settings=settings).run())
        assert "".join(c.text or "" for c in chunks) == self.TEXT

    @pytest.mark.asyncio
    async def test_records_independent_of_batch_size(self, employee_csv, employee_schema):
        results = []
        for rows in (1, 2, 100):
            settings = Settings(_env_file=None, row_batch_size=rows)
            extractor = CsvExtractor()
            source = ChunkSource.open(employee_csv, "text/csv", settings=settings, mode=extractor.source_mode)
            chunks = await collect(MappingOrchestrator(source, extractor, employee_schema, settings=settings).run())
            results.append([r for c in chunks for r in c.records])
        assert results[0] == results[1] == results[2]
        assert len(results[0]) == 4


class TestRateLimiting:
    @pytest.mark.asyncio
    async def test_concurrent_sessions_respect_rpm(self, employee_schema):
        settings = Settings(_env_file=None, rate_limit_max_wait_seconds=0.0, retry_base_delay_seconds=0.0)
        profile = ProviderProfile(
            name="limited", model="fake-model",
            limits=ProviderLimits(requests_per_minute=3, cost_per_input_token=1e-6),
        )
        client = FakeLLMClient([suggestion()])
        gateway = ProviderGateway(settings)
        gateway.register(profile, client)
        request = MappingRequest(
            candidates=[EscalationCandidate(source_field="emp_no", samples=["1"])],
            available_targets=["Id"],
        )

        results = await asyncio.gather(
            *(gateway.call(request, employee_schema) for _ in range(4)),
            return_exceptions=True,
        )
        succeeded = [r for r in results if not isinstance(r, BaseException)]
        limited = [r for r in results if isinstance(r, RateLimitExceeded)]
        assert len(succeeded) == 3
        assert len(limited) == 1
        assert len(client.calls) == 3
