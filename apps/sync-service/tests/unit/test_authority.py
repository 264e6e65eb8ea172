"""
Unit tests for the host-authoritative PlaybackAuthority.

Tests:
- State machine transitions (set_track, play, pause, seek, host_report)
- One beacon per accepted mutation, evaluated at the mutation time
- Authorization: non-hosts never change state or emit beacons
- Validation: missing URL, no track loaded, position clamping
- Position invariant over random operation sequences (seeded)
"""

import random

import pytest

from sync_service.errors import InvalidTrackError, NoTrackLoadedError, UnauthorizedError
from sync_service.models.messages import (
    BeaconReason,
    HostReportRequest,
    PauseRequest,
    PlayRequest,
    SeekRequest,
    SetTrackRequest,
)
from sync_service.models.playback import PlaybackState, PlaybackStatus, TrackRef
from sync_service.sync.authority import PlaybackAuthority

HOST = "host-1"
GUEST = "guest-1"
ROOM = "ROOM01"


@pytest.fixture
def beacons():
    return []


@pytest.fixture
def authority(clock, beacons):
    return PlaybackAuthority(
        ROOM,
        is_host=lambda participant_id, room_id: participant_id == HOST and room_id == ROOM,
        on_beacon=beacons.append,
        time_source=clock,
    )


class TestTransitions:
    """Tests for the Empty / Paused / Playing state machine."""

    def test_starts_empty(self, authority):
        assert authority.status is PlaybackStatus.EMPTY
        assert authority.state == PlaybackState()

    def test_set_track_starts_playing_at_zero(self, authority, clock, track, beacons):
        beacon = authority.set_track(HOST, track)

        state = authority.state
        assert state.track == track
        assert state.is_playing is True
        assert state.base_position_sec == 0.0
        assert state.epoch_server_time == clock()
        assert beacons == [beacon]
        assert beacon.position_sec == 0.0
        assert beacon.server_send_time == clock()
        assert beacon.track_id == track.id
        assert beacon.duration_sec == 180.0

    def test_pause_freezes_current_position(self, authority, clock, track):
        authority.set_track(HOST, track)
        clock.advance(seconds=10)

        beacon = authority.pause(HOST)

        assert authority.status is PlaybackStatus.PAUSED
        assert authority.state.base_position_sec == pytest.approx(10.0)
        assert authority.state.epoch_server_time is None
        assert beacon.position_sec == pytest.approx(10.0)
        assert beacon.is_playing is False

        clock.advance(seconds=2)
        assert authority.position_at() == pytest.approx(10.0)

    def test_play_resumes_from_paused_position(self, authority, clock, track):
        authority.set_track(HOST, track)
        clock.advance(seconds=4)
        authority.pause(HOST)
        clock.advance(seconds=30)

        authority.play(HOST)
        clock.advance(seconds=1.5)

        assert authority.state.epoch_server_time == pytest.approx(clock() - 1500)
        assert authority.position_at() == pytest.approx(5.5)

    def test_play_while_playing_keeps_state_but_emits_beacon(self, authority, clock, track, beacons):
        authority.set_track(HOST, track)
        clock.advance(seconds=3)
        before = authority.state

        beacon = authority.play(HOST)

        assert authority.state == before
        assert len(beacons) == 2
        assert beacon.position_sec == pytest.approx(3.0)

    def test_pause_while_paused_is_noop(self, authority, clock, track):
        authority.set_track(HOST, track)
        authority.pause(HOST)
        before = authority.state
        clock.advance(seconds=5)

        authority.pause(HOST)

        assert authority.state == before

    def test_play_with_start_position(self, authority, clock, track):
        authority.set_track(HOST, track)
        authority.pause(HOST)

        beacon = authority.play(HOST, start_position_sec=42.0)

        assert authority.state.base_position_sec == 42.0
        assert authority.state.epoch_server_time == clock()
        assert beacon.is_playing is True

    def test_seek_while_playing_resets_epoch(self, authority, clock, track):
        authority.set_track(HOST, track)
        clock.advance(seconds=7)

        authority.seek(HOST, 60.0)

        assert authority.state.base_position_sec == 60.0
        assert authority.state.epoch_server_time == clock()
        clock.advance(seconds=2)
        assert authority.position_at() == pytest.approx(62.0)

    def test_seek_while_paused_stays_paused(self, authority, track):
        authority.set_track(HOST, track)
        authority.pause(HOST)

        authority.seek(HOST, 30.0)

        assert authority.status is PlaybackStatus.PAUSED
        assert authority.state.epoch_server_time is None
        assert authority.position_at() == 30.0

    def test_set_track_again_resets_to_zero(self, authority, clock, track):
        authority.set_track(HOST, track)
        clock.advance(seconds=20)
        authority.pause(HOST)

        other = TrackRef(id="track-2", url="https://youtu.be/abc", duration_sec=240)
        authority.set_track(HOST, other)

        assert authority.track == other
        assert authority.status is PlaybackStatus.PLAYING
        assert authority.position_at() == 0.0

    def test_apply_dispatches_typed_messages(self, authority, clock, track):
        authority.apply(HOST, SetTrackRequest(track=track))
        clock.advance(seconds=1)
        authority.apply(HOST, PauseRequest())
        authority.apply(HOST, SeekRequest(position_sec=12.0))
        authority.apply(HOST, PlayRequest())

        assert authority.status is PlaybackStatus.PLAYING
        assert authority.position_at() == 12.0


class TestBeacons:
    """Tests for beacon numbering and content."""

    def test_sequence_increases_per_beacon(self, authority, track, beacons):
        authority.set_track(HOST, track)
        authority.pause(HOST)
        authority.seek(HOST, 5.0)

        assert [b.sequence for b in beacons] == [0, 1, 2]
        assert all(b.reason is BeaconReason.STATE_CHANGE for b in beacons)

    def test_beacon_without_mutation_is_not_published(self, authority, track, beacons):
        authority.set_track(HOST, track)

        periodic = authority.beacon(BeaconReason.PERIODIC)

        assert periodic.sequence == 1
        assert periodic.reason is BeaconReason.PERIODIC
        assert len(beacons) == 1

    def test_empty_room_beacon_has_no_track(self, authority):
        beacon = authority.beacon(BeaconReason.JOIN)

        assert beacon.track_id is None
        assert beacon.is_playing is False
        assert beacon.duration_sec == 0.0


class TestAuthorization:
    """Non-host participants are rejected without side effects."""

    @pytest.mark.parametrize(
        "op",
        [
            lambda a, t: a.set_track(GUEST, t),
            lambda a, t: a.play(GUEST),
            lambda a, t: a.pause(GUEST),
            lambda a, t: a.seek(GUEST, 10.0),
            lambda a, t: a.host_report(GUEST, 10.0, True, 0.0),
        ],
        ids=["set_track", "play", "pause", "seek", "host_report"],
    )
    def test_non_host_is_rejected(self, authority, track, beacons, op):
        authority.set_track(HOST, track)
        before = authority.state
        emitted = len(beacons)

        with pytest.raises(UnauthorizedError):
            op(authority, track)

        assert authority.state == before
        assert len(beacons) == emitted

    def test_host_of_other_room_is_rejected(self, clock, track):
        other = PlaybackAuthority(
            "OTHER1",
            is_host=lambda participant_id, room_id: room_id == ROOM,
            time_source=clock,
        )

        with pytest.raises(UnauthorizedError):
            other.set_track(HOST, track)

    def test_unauthorized_checked_before_validation(self, authority):
        with pytest.raises(UnauthorizedError):
            authority.pause(GUEST)


class TestValidation:
    """Tests for rejected and clamped inputs."""

    def test_track_without_url_is_invalid(self, authority, beacons):
        with pytest.raises(InvalidTrackError):
            authority.set_track(HOST, TrackRef(title="No URL", url="   "))

        assert authority.status is PlaybackStatus.EMPTY
        assert beacons == []

    @pytest.mark.parametrize(
        "op",
        [
            lambda a: a.play(HOST),
            lambda a: a.pause(HOST),
            lambda a: a.seek(HOST, 3.0),
            lambda a: a.host_report(HOST, 3.0, True, 0.0),
        ],
        ids=["play", "pause", "seek", "host_report"],
    )
    def test_controls_require_a_track(self, authority, beacons, op):
        with pytest.raises(NoTrackLoadedError):
            op(authority)

        assert beacons == []

    def test_seek_is_clamped_to_duration(self, authority, track):
        authority.set_track(HOST, track)

        authority.seek(HOST, 500.0)

        assert authority.state.base_position_sec == 180.0

    def test_seek_unknown_duration_is_not_clamped(self, authority):
        authority.set_track(HOST, TrackRef(url="https://cdn.example.com/live.mp3"))

        authority.seek(HOST, 500.0)

        assert authority.state.base_position_sec == 500.0


class TestHostReport:
    """Tests for the host's authoritative overwrite."""

    def test_report_overwrites_position_and_state(self, authority, clock, track):
        authority.set_track(HOST, track)
        clock.advance(seconds=10)

        authority.host_report(HOST, position_sec=8.5, is_playing=False, local_send_time=0.0)

        assert authority.status is PlaybackStatus.PAUSED
        assert authority.state.base_position_sec == 8.5

    def test_report_without_offset_is_applied_as_is(self, authority, clock, track):
        authority.set_track(HOST, track)

        authority.host_report(HOST, 20.0, True, local_send_time=clock() - 500)

        assert authority.state.base_position_sec == 20.0
        assert authority.state.epoch_server_time == clock()

    def test_report_extrapolates_transit_time(self, authority, clock, track):
        authority.set_track(HOST, track)
        host_offset = -1_000.0  # host clock runs 1s ahead of the server
        sent_server_time = clock() - 300
        local_send_time = sent_server_time - host_offset

        authority.host_report(HOST, 20.0, True, local_send_time, clock_offset_ms=host_offset)

        assert authority.state.base_position_sec == pytest.approx(20.3)

    def test_report_with_implausible_transit_is_not_extrapolated(self, authority, clock, track):
        authority.set_track(HOST, track)

        authority.host_report(HOST, 20.0, True, clock() - 10_000, clock_offset_ms=0.0)
        assert authority.state.base_position_sec == 20.0

        authority.host_report(HOST, 21.0, True, clock() + 500, clock_offset_ms=0.0)
        assert authority.state.base_position_sec == 21.0

    def test_paused_report_is_not_extrapolated(self, authority, clock, track):
        authority.set_track(HOST, track)

        authority.host_report(HOST, 20.0, False, clock() - 300, clock_offset_ms=0.0)

        assert authority.state.base_position_sec == 20.0

    def test_report_message_dispatch(self, authority, clock, track):
        authority.set_track(HOST, track)

        authority.apply(
            HOST,
            HostReportRequest(position_sec=33.0, is_playing=True, local_send_time=clock()),
        )

        assert authority.position_at() == 33.0

    def test_last_writer_wins(self, authority, clock, track):
        authority.set_track(HOST, track)
        authority.seek(HOST, 100.0)
        authority.host_report(HOST, 40.0, True, clock())

        assert authority.position_at() == 40.0


class TestPositionInvariant:
    """Random operation sequences never break the position invariant."""

    @pytest.mark.parametrize("seed", range(20))
    def test_random_operation_sequences(self, clock, beacons, seed):
        rng = random.Random(seed)
        authority = PlaybackAuthority(
            ROOM,
            is_host=lambda participant_id, room_id: participant_id == HOST,
            on_beacon=beacons.append,
            time_source=clock,
        )
        authority.set_track(
            HOST, TrackRef(id="t", url="https://cdn.example.com/t.mp3", duration_sec=600)
        )
        accepted = 1

        for _ in range(60):
            clock.advance(ms=rng.uniform(0, 5_000))
            before = authority.position_at()
            was_playing = authority.state.is_playing
            op = rng.choice(["play", "pause", "seek", "play_at", "guest", "wait"])

            if op == "play":
                authority.play(HOST)
                expected = before
            elif op == "pause":
                authority.pause(HOST)
                expected = before
            elif op == "seek":
                target = rng.uniform(0, 600)
                authority.seek(HOST, target)
                expected = target
            elif op == "play_at":
                target = rng.uniform(0, 600)
                authority.play(HOST, start_position_sec=target)
                expected = target
            elif op == "guest":
                with pytest.raises(UnauthorizedError):
                    authority.seek(GUEST, 1.0)
                expected = before
            else:
                expected = before

            if op not in ("guest", "wait"):
                accepted += 1
            if op == "play_at" or op == "play":
                assert authority.state.is_playing
            if op == "pause":
                assert not authority.state.is_playing
            if op == "seek":
                assert authority.state.is_playing == was_playing

            state = authority.state
            assert authority.position_at() == pytest.approx(expected)
            assert (state.epoch_server_time is not None) == state.is_playing

            # Time only accrues while playing
            elapsed = rng.uniform(0, 3_000)
            later = clock() + elapsed
            if state.is_playing:
                assert authority.position_at(later) == pytest.approx(expected + elapsed / 1000)
            else:
                assert authority.position_at(later) == pytest.approx(expected)

        assert len(beacons) == accepted
        sequences = [b.sequence for b in beacons]
        assert sequences == sorted(sequences)
        assert len(set(sequences)) == len(sequences)
