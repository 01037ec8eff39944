"""Tests for SourceIdMinter."""

import pytest

from provenance.citation.id_minting import SourceIdMinter


class TestMintingCounters:
    """Counter-based IDs per prefix."""

    def test_counter_ids_are_zero_padded_per_prefix(self) -> None:
        """
        Test each prefix keeps its own counter.

        Arrange: Fresh minter
        Act: Mint pdf, pdf, log, image
        Assert: Independent zero-padded sequences
        """
        minter = SourceIdMinter()

        ids = [minter.mint('pdf'), minter.mint('pdf'), minter.mint('log'), minter.mint('image')]

        assert ids == ['D-001', 'D-002', 'LOG-001', 'IMG-001']

    def test_counter_skips_reserved_ids(self) -> None:
        minter = SourceIdMinter(taken=['D-001'])
        minter.reserve('D-002')

        assert minter.mint('pdf') == 'D-003'

    @pytest.mark.parametrize('document_type', ['pdf', 'image', 'blueprint', 'regulation', 'log', 'site_photo'])
    def test_ids_unique_for_every_type(self, document_type) -> None:
        minter = SourceIdMinter()

        ids = [minter.mint(document_type) for _ in range(50)]

        assert len(set(ids)) == len(ids)

    def test_unique_when_mixing_seeds_and_counters(self) -> None:
        minter = SourceIdMinter()

        ids = [minter.mint('pdf', seed) for seed in ['001', None, None, '002', '002', None]]

        assert len(set(ids)) == len(ids)

    def test_unknown_type_mints_generic_id(self, caplog) -> None:
        minter = SourceIdMinter()

        assert minter.mint('spreadsheet') == 'DOC-001'
        assert minter.mint(None) == 'DOC-002'
        assert 'Unknown document type' in caplog.text

    def test_deterministic_for_same_call_sequence(self) -> None:
        calls = [('pdf', None), ('regulation', '3.4'), ('regulation', '3.4'), ('site_photo', None)]

        first = SourceIdMinter()
        second = SourceIdMinter()

        assert [first.mint(*c) for c in calls] == [second.mint(*c) for c in calls]


class TestSeedHints:
    """The document's own numbering is preferred when free."""

    def test_regulation_scenario(self) -> None:
        """Seeds 3.4, 3.4, 5.1 mint OBC 3.4, OBC 3.4-2, OBC 5.1."""
        minter = SourceIdMinter()

        ids = [minter.mint('regulation', seed) for seed in ['3.4', '3.4', '5.1']]

        assert ids == ['OBC 3.4', 'OBC 3.4-2', 'OBC 5.1']

    def test_seed_already_carrying_prefix(self) -> None:
        minter = SourceIdMinter()

        assert minter.mint('regulation', 'OBC 9.10') == 'OBC 9.10'

    def test_blank_seed_falls_back_to_counter(self) -> None:
        minter = SourceIdMinter()

        assert minter.mint('site_photo', '   ') == 'P-001'

    def test_third_collision_keeps_counting(self) -> None:
        minter = SourceIdMinter()

        ids = [minter.mint('pdf', '102') for _ in range(3)]

        assert ids == ['D-102', 'D-102-2', 'D-102-3']


class TestReservation:

    def test_reserve_reports_collisions(self) -> None:
        minter = SourceIdMinter()

        assert minter.reserve('D-1') is True
        assert minter.reserve('D-1') is False
        assert 'D-1' in minter
        assert minter.is_taken('D-1')

    def test_disambiguate_returns_free_id_unchanged(self) -> None:
        minter = SourceIdMinter()

        assert minter.disambiguate('LOG-045') == 'LOG-045'
        assert minter.disambiguate('LOG-045') == 'LOG-045-2'
