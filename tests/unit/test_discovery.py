"""
Unit tests for collection discovery and mapping confirmation.

Collections are built from raw Notion payloads so classification sees the
same shapes the live client produces.
"""

import pytest

from autopilot.core.errors import (
    AttemptsStoreError,
    MappingConfirmationError,
    NoEligibleCollectionsError,
    SchemaDriftError,
)
from autopilot.sync.discovery import (
    CollectionClassifier,
    CollectionDiscovery,
    ConfidenceTier,
    ConfirmedMapping,
    DiscoveryConfig,
    confirm,
    prepare_mapping,
)
from autopilot.sync.notion_client import NotionClient
from autopilot.sync.parsers import parse_collection
from config import Settings

DSA_PROPS = {
    "Name": "title",
    "CPRD: Difficulty": "select:Easy,Medium,Hard",
    "Pattern": "select",
    "LeetCode Link": "url",
}

SHEETS = {
    "cn-db": ("Computer Networks: TCP, HTTP & OSI", {
        "Name": "title",
        "Status": "status",
        "Protocols": "multi_select",
        "Layers": "select",
        "CPRD: Concepts": "rich_text",
    }),
    "dsa-a": ("LeetCode DSA: Algorithms & Data Structures", DSA_PROPS),
    "dsa-b": ("NeetCode Blind 75 Algorithms Coding", DSA_PROPS),
    "os-db": ("Operating System Processes & Memory", {
        "Name": "title",
        "Status": "status",
        "Scheduling": "rich_text",
    }),
    "reading": ("Reading List", {"Name": "title", "Author": "rich_text"}),
    "tracker": ("Weekly Tracker", {"Name": "title", "Status": "status"}),
    "journal": ("Coding Journal", {"Name": "title", "Status": "status"}),
}


class StaticLister:
    def __init__(self, collections):
        self.collections = list(collections)

    def list_collections(self):
        return list(self.collections)


@pytest.fixture
def collection(raw_database):
    def _make(db_id, title, properties):
        return parse_collection(raw_database(db_id, title, properties))
    return _make


@pytest.fixture
def attempts_store(collection, attempts_schema):
    return collection("att", "Attempts", attempts_schema)


@pytest.fixture
def workspace(collection, attempts_store):
    return [collection(db_id, title, props) for db_id, (title, props) in SHEETS.items()] + [attempts_store]


@pytest.fixture
def classifier():
    return CollectionClassifier()


@pytest.fixture
def proposal(workspace):
    return CollectionDiscovery(StaticLister(workspace)).discover()


class TestClassifier:

    def test_title_and_markers_give_high_confidence(self, classifier, collection):
        result = classifier.classify(collection("cn-db", *SHEETS["cn-db"]))

        assert result.domain == "CN"
        assert result.title_confidence == pytest.approx(0.5)
        assert result.has_markers is True
        assert result.confidence == pytest.approx(0.9)
        assert classifier.config.tier(result.confidence) == ConfidenceTier.HIGH

    def test_short_keywords_match_whole_words_only(self, classifier):
        assert classifier.title_match("Blog posts") == (None, 0.0)
        assert classifier.title_match("OS Notes")[0] == "OS"
        assert classifier.title_match("HR round")[0] == "HR"

    def test_ambiguous_title_falls_back_to_schema(self, classifier, collection):
        weekend = collection("w", "Weekend Notes", {
            "Name": "title",
            "Status": "status",
            "Difficulty": "select",
            "Pattern": "select",
            "Topic": "rich_text",
            "LeetCode Link": "url",
            "Company": "select",
            "CPRD: Difficulty": "select",
        })

        result = classifier.classify(weekend)

        assert result.ambiguous_title is True
        assert result.domain == "DSA"
        # Weak title, but markers + typical properties + sheet shape floor it
        assert result.confidence >= 0.6

    def test_schema_overrides_weak_title(self, classifier, collection):
        # "coding" hints DSA weakly; the columns are clearly an online-assessment log
        result = classifier.classify(collection("x", "Coding Rounds", {
            "Name": "title",
            "Status": "status",
            "Company": "select",
            "Platform": "select",
            "Assessment": "rich_text",
        }))

        assert result.domain == "OA"

    def test_unknown_without_signals(self, classifier, collection):
        result = classifier.classify(collection("t", *SHEETS["tracker"]))

        assert result.domain == "Unknown"
        assert result.confidence == 0.0

    def test_learning_sheet_shape(self, classifier, collection):
        assert classifier.classify(collection("r", *SHEETS["reading"])).is_learning_sheet is False
        assert classifier.classify(collection("o", *SHEETS["os-db"])).is_learning_sheet is True

    @pytest.mark.parametrize(
        "confidence,tier",
        [(0.9, ConfidenceTier.HIGH), (0.7, ConfidenceTier.HIGH), (0.69, ConfidenceTier.WARN),
         (0.4, ConfidenceTier.WARN), (0.39, ConfidenceTier.BLOCK)],
    )
    def test_tiers(self, confidence, tier):
        assert DiscoveryConfig().tier(confidence) == tier


class TestProposal:

    def test_single_high_collection_is_auto_accepted(self, proposal):
        assert set(proposal.auto_accepted) == {"CN"}
        assert proposal.auto_accepted["CN"].id == "cn-db"

    def test_multiple_high_collections_need_confirmation(self, proposal):
        pending = proposal.requires_confirmation["DSA"]

        assert "DSA" not in proposal.auto_accepted
        assert [c.id for c in pending] == ["dsa-a", "dsa-b"]
        assert all("Multiple high-confidence" in c.reason for c in pending)

    def test_medium_confidence_needs_confirmation(self, proposal):
        pending = proposal.requires_confirmation["OS"]

        assert [c.id for c in pending] == ["os-db"]
        assert pending[0].reason == "Confidence 0.53 needs confirmation"

    def test_blocked_collections_carry_reasons(self, proposal):
        reasons = {c.id: c.reason for c in proposal.blocked}

        assert reasons["reading"] == "not a practice-item collection"
        assert reasons["tracker"] == "could not determine a domain"
        assert reasons["journal"] == "confidence 0.11 below 0.40"

    def test_proposed_collections_carry_their_domain(self, proposal):
        assert proposal.auto_accepted["CN"].collection.domain == "CN"
        assert [c.collection.domain for c in proposal.requires_confirmation["OS"]] == ["OS"]
        assert all(c.collection.domain is None for c in proposal.blocked)

    def test_attempts_store_is_separate(self, proposal):
        assert proposal.attempts_collection.id == "att"
        assert proposal.candidate("att") is None
        assert "att" not in {c.id for c in proposal.blocked}

    def test_fingerprints_cover_every_collection(self, proposal, workspace):
        assert set(proposal.fingerprints) == {c.id for c in workspace}

    def test_listing_order_does_not_matter(self, workspace):
        forward = CollectionDiscovery(StaticLister(workspace)).discover()
        backward = CollectionDiscovery(StaticLister(reversed(workspace))).discover()

        assert {d: c.id for d, c in forward.auto_accepted.items()} == {
            d: c.id for d, c in backward.auto_accepted.items()
        }
        assert [c.id for c in forward.blocked] == [c.id for c in backward.blocked]

    def test_optional_extra_collection_next_to_auto_accepted(self, collection, attempts_store):
        collections = [
            collection("cn-db", *SHEETS["cn-db"]),
            collection("cn-extra", "TCP, HTTP and OSI Networking", {"Name": "title", "Status": "status"}),
            attempts_store,
        ]

        proposal = CollectionDiscovery(StaticLister(collections)).discover()

        assert proposal.auto_accepted["CN"].id == "cn-db"
        assert [c.reason for c in proposal.requires_confirmation["CN"]] == ["Optional additional CN collection"]

    def test_nothing_eligible(self, collection, attempts_store):
        lister = StaticLister([collection("r", *SHEETS["reading"]), attempts_store])

        with pytest.raises(NoEligibleCollectionsError):
            CollectionDiscovery(lister).discover()


class TestAttemptsStore:

    def test_missing_attempts_store(self, collection):
        lister = StaticLister([collection("cn-db", *SHEETS["cn-db"])])

        with pytest.raises(AttemptsStoreError, match="No attempts collection"):
            CollectionDiscovery(lister).discover()

    def test_multiple_attempts_stores(self, collection, attempts_schema):
        lister = StaticLister([
            collection("att-1", "Attempts", attempts_schema),
            collection("att-2", "Old Attempts", attempts_schema),
            collection("cn-db", *SHEETS["cn-db"]),
        ])

        with pytest.raises(AttemptsStoreError, match="Multiple attempts collections"):
            CollectionDiscovery(lister).discover()

    def test_invalid_result_options_fail_through_live_client(self, raw_database, attempts_schema, fake_notion):
        schema = dict(attempts_schema, Result="select:Failed,Partial")
        databases = [raw_database("att", "Attempts", schema), raw_database("cn-db", *SHEETS["cn-db"])]
        settings = Settings(_env_file=None, notion_api_key="")
        client = NotionClient(settings=settings, client=fake_notion(databases=databases))

        with pytest.raises(AttemptsStoreError, match='Result select must include "Solved"'):
            prepare_mapping(client, settings=settings)

    def test_valid_alongside_invalid_is_accepted(self, collection, attempts_schema):
        broken = {k: v for k, v in attempts_schema.items() if not k.startswith("Time")}
        lister = StaticLister([
            collection("att", "Attempts", attempts_schema),
            collection("att-old", "Old Attempts", broken),
            collection("cn-db", *SHEETS["cn-db"]),
        ])

        assert CollectionDiscovery(lister).discover().attempts_collection.id == "att"

    def test_schema_problems_are_listed(self, collection):
        problems = CollectionDiscovery.validate_attempts_schema(
            collection("att", "Attempts", {"Item": "rich_text", "Result": "multi_select"})
        )

        assert problems == [
            "Item must be a relation property",
            "Result must be a select property",
            'a number property "Time Spent (min)" or "Time Spent" is required',
        ]


class TestConfirm:

    def test_confirm_selections(self, proposal):
        mapping = confirm(proposal, {"DSA": ["dsa-b"], "OS": []})

        assert mapping.domains == {"CN": ("cn-db",), "DSA": ("dsa-b",)}
        assert mapping.attempts_collection_id == "att"
        assert set(mapping.fingerprints) == {"att", "cn-db", "dsa-b"}
        assert mapping.collection_ids == ["cn-db", "dsa-b"]
        assert proposal.consumed is True

    def test_unresolved_domain_is_rejected(self, proposal):
        with pytest.raises(MappingConfirmationError, match="DSA, OS"):
            confirm(proposal, {})
        assert proposal.consumed is False

    def test_blocked_selection_is_rejected(self, proposal):
        with pytest.raises(MappingConfirmationError, match="blocked"):
            confirm(proposal, {"DSA": ["dsa-a", "journal"], "OS": []})

    def test_unoffered_selection_is_rejected(self, proposal):
        with pytest.raises(MappingConfirmationError, match="not offered"):
            confirm(proposal, {"DSA": ["os-db"], "OS": []})

    def test_proposal_is_single_use(self, proposal):
        confirm(proposal, {"DSA": ["dsa-a"], "OS": ["os-db"]})

        with pytest.raises(MappingConfirmationError, match="already confirmed"):
            confirm(proposal, {"DSA": ["dsa-a"], "OS": ["os-db"]})

    def test_drift_requires_acknowledgement(self, workspace):
        discovery = CollectionDiscovery(StaticLister(workspace))
        proposal = discovery.discover(previous_fingerprints={"cn-db": "stale", "gone": "abc"})

        assert proposal.fingerprint_changed is True
        changes = {c.collection_id: c.current for c in proposal.fingerprint_changes}
        assert changes == {"cn-db": proposal.fingerprints["cn-db"], "gone": None}

        with pytest.raises(MappingConfirmationError, match="acknowledge"):
            confirm(proposal, {"DSA": ["dsa-a"], "OS": []})

        mapping = confirm(proposal, {"DSA": ["dsa-a"], "OS": []}, acknowledge_schema_changes=True)
        assert mapping.domains["CN"] == ("cn-db",)

    def test_unchanged_fingerprints_are_not_drift(self, workspace):
        discovery = CollectionDiscovery(StaticLister(workspace))
        first = discovery.discover()

        second = discovery.discover(previous_fingerprints=first.fingerprints)

        assert second.fingerprint_changed is False


class TestConfirmedMapping:

    def test_round_trip(self, proposal):
        mapping = confirm(proposal, {"DSA": ["dsa-a", "dsa-b"], "OS": ["os-db"]})

        restored = ConfirmedMapping.from_dict(mapping.to_dict())

        assert restored == mapping
        assert restored.domains["DSA"] == ("dsa-a", "dsa-b")

    def test_verify(self):
        mapping = ConfirmedMapping(
            domains={"CN": ("cn-db",)},
            attempts_collection_id="att",
            fingerprints={"att": "1", "cn-db": "2"},
        )

        mapping.verify({"att": "1", "cn-db": "2", "other": "3"})

        with pytest.raises(SchemaDriftError) as exc:
            mapping.verify({"cn-db": "2"})
        assert exc.value.changed_ids == ["att"]
