"""Tests for the RoomRegistry: codes, membership, history and inactivity eviction."""

import itertools
import re

import anyio
import pytest

from conftest import PROTECTED_CODE, TEST_INACTIVITY_TIMEOUT
from ephemeral_chat.models.models import Member, Message
from ephemeral_chat.services import room_registry as room_registry_module
from ephemeral_chat.services.room_registry import RoomRegistry

pytestmark = pytest.mark.anyio

CODE_PATTERN = re.compile(r"^[A-Z0-9]{6}$")

AL = Member(id="u1", username="Al", color="#111")
BO = Member(id="u2", username="Bo", color="#222")


def make_message(code: str, content: str, index: int = 0) -> Message:
    return Message(
        id=f"{index}-test",
        room_code=code,
        user_id=AL.id,
        username=AL.username,
        user_color=AL.color,
        content=content,
        timestamp=index,
    )


class TestRoomCodes:
    async def test_generated_codes_are_six_uppercase_alphanumerics(self, registry: RoomRegistry) -> None:
        codes = [registry.create_room() for _ in range(200)]

        assert all(CODE_PATTERN.match(code) for code in codes)
        assert len(set(codes)) == len(codes)
        assert sorted(registry.list_active_rooms()) == sorted(codes)

    async def test_collision_with_live_room_is_regenerated(
        self, registry: RoomRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        chars = iter("AAAAAA" + "AAAAAA" + "BBBBBB")
        monkeypatch.setattr(room_registry_module.secrets, "choice", lambda _alphabet: next(chars))

        assert registry.create_room() == "AAAAAA"
        assert registry.create_room() == "BBBBBB"

    async def test_reserved_code_is_never_generated(
        self, registry: RoomRegistry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        chars = iter(PROTECTED_CODE + "CCCCCC")
        monkeypatch.setattr(room_registry_module.secrets, "choice", lambda _alphabet: next(chars))

        assert registry.generate_room_code() == "CCCCCC"

    async def test_fixed_code_already_live_is_refused(self, registry: RoomRegistry) -> None:
        code = registry.create_room()

        with pytest.raises(ValueError):
            registry.create_room(code)


class TestLookup:
    async def test_new_room_is_empty(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        room = registry.get_room(code)

        assert room is not None
        assert room.code == code
        assert room.users == []
        assert room.created_at == room.last_activity
        assert registry.get_messages(code) == []
        assert registry.room_exists(code)

    async def test_lookup_is_case_insensitive(self, registry: RoomRegistry) -> None:
        code = registry.create_room()

        assert registry.room_exists(code.lower())
        assert registry.get_room(f"  {code.lower()} ") is not None

    @pytest.mark.parametrize("bad_code", ["ZZZZZZ", "", "toolongcode", None, 42, ["AB12C3"]])
    async def test_unknown_or_malformed_codes_report_not_found(self, registry: RoomRegistry, bad_code) -> None:
        registry.create_room()

        assert registry.get_room(bad_code) is None
        assert registry.room_exists(bad_code) is False
        assert registry.get_users(bad_code) == []
        assert registry.get_messages(bad_code) == []
        assert registry.add_user(bad_code, AL) is False
        assert registry.remove_user(bad_code, AL.id) is None
        assert registry.delete_room(bad_code) is False

    async def test_snapshots_do_not_leak_internal_state(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        registry.add_user(code, AL)

        registry.get_users(code).append(BO)
        registry.get_room(code).users.append(BO)

        assert registry.get_users(code) == [AL]


class TestMembership:
    async def test_adding_same_member_twice_is_idempotent(self, registry: RoomRegistry) -> None:
        code = registry.create_room()

        assert registry.add_user(code, AL)
        assert registry.add_user(code, Member(id="u1", username="Al again", color="#999"))

        assert registry.get_users(code) == [AL]

    async def test_members_keep_join_order(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        registry.add_user(code, AL)
        registry.add_user(code, BO)

        assert [u.id for u in registry.get_users(code)] == ["u1", "u2"]

    async def test_add_member_to_missing_room_fails(self, registry: RoomRegistry) -> None:
        assert registry.add_user("ZZZZZZ", AL) is False
        assert registry.room_exists("ZZZZZZ") is False

    async def test_remove_returns_member_and_keeps_nonempty_room(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        registry.add_user(code, AL)
        registry.add_user(code, BO)

        assert registry.remove_user(code, "u2") == BO
        assert registry.room_exists(code)
        assert registry.get_users(code) == [AL]

    async def test_removing_absent_member_is_noop(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        registry.add_user(code, AL)

        assert registry.remove_user(code, "nobody") is None
        assert registry.get_users(code) == [AL]

    async def test_removing_last_member_deletes_room_immediately(self, registry: RoomRegistry) -> None:
        expired: list[str] = []
        registry.on_room_expired(expired.append)

        code = registry.create_room()
        registry.add_user(code, AL)
        registry.add_message(code, make_message(code, "bye"))

        assert registry.remove_user(code, AL.id) == AL
        assert registry.get_room(code) is None
        assert registry.get_messages(code) == []

        # The cancelled timer never fires an eviction notice
        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 2)
        assert expired == []
        assert registry.rooms_expired == 0


class TestMessages:
    async def test_append_to_missing_room_fails_without_creating_it(self, registry: RoomRegistry) -> None:
        assert registry.add_message("ZZZZZZ", make_message("ZZZZZZ", "hi")) is False
        assert registry.room_exists("ZZZZZZ") is False
        assert registry.list_active_rooms() == []

    async def test_history_preserves_order_across_interleaved_rooms(self, registry: RoomRegistry) -> None:
        first = registry.create_room()
        second = registry.create_room()

        for i in range(20):
            registry.add_message(first, make_message(first, f"first-{i}", i))
            registry.add_message(second, make_message(second, f"second-{i}", i))

        assert [m.content for m in registry.get_messages(first)] == [f"first-{i}" for i in range(20)]
        assert [m.content for m in registry.get_messages(second)] == [f"second-{i}" for i in range(20)]

    async def test_append_refreshes_last_activity(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        before = registry.get_room(code).last_activity

        await anyio.sleep(0.01)
        registry.add_message(code, make_message(code, "hi"))

        assert registry.get_room(code).last_activity > before


class TestInactivityEviction:
    async def test_idle_room_is_evicted_and_listeners_notified_once(self, registry: RoomRegistry) -> None:
        first: list[str] = []
        second: list[str] = []
        registry.on_room_expired(first.append)
        registry.on_room_expired(second.append)

        code = registry.create_room()
        registry.add_user(code, AL)

        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 2)

        assert registry.get_room(code) is None
        assert first == [code]
        assert second == [code]
        assert registry.rooms_expired == 1

        await anyio.sleep(TEST_INACTIVITY_TIMEOUT)
        assert first == [code]

    async def test_activity_slides_the_deadline(self, registry: RoomRegistry) -> None:
        expired: list[str] = []
        registry.on_room_expired(expired.append)

        code = registry.create_room()
        registry.add_user(code, AL)

        # Activity every third of the window, for well over one full window
        for i in range(6):
            await anyio.sleep(TEST_INACTIVITY_TIMEOUT / 3)
            registry.add_message(code, make_message(code, f"ping-{i}", i))

        assert registry.room_exists(code)
        assert expired == []

        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 2)

        assert not registry.room_exists(code)
        assert expired == [code]

    async def test_every_activity_kind_rearms_the_timer(self, registry: RoomRegistry) -> None:
        code = registry.create_room()
        registry.add_user(code, AL)

        for action in (
            lambda: registry.add_user(code, BO),
            lambda: registry.remove_user(code, BO.id),
            lambda: registry.add_message(code, make_message(code, "hi")),
        ):
            await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 0.6)
            action()

        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 0.6)
        assert registry.room_exists(code)

    async def test_failing_listener_does_not_block_others(self, registry: RoomRegistry) -> None:
        notified: list[str] = []

        def broken(_code: str) -> None:
            raise RuntimeError("boom")

        registry.on_room_expired(broken)
        registry.on_room_expired(notified.append)

        code = registry.create_room()
        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 2)

        assert notified == [code]

    async def test_code_of_deleted_room_can_be_reused(self, registry: RoomRegistry) -> None:
        expired: list[str] = []
        registry.on_room_expired(expired.append)

        code = registry.create_room()
        registry.delete_room(code)
        assert registry.create_room(code) == code

        # Only the new room's own timer can evict it
        await anyio.sleep(TEST_INACTIVITY_TIMEOUT * 2)
        assert expired == [code]

    async def test_independent_rooms_expire_independently(self, registry: RoomRegistry) -> None:
        idle = registry.create_room()
        busy = registry.create_room()

        for i in range(4):
            await anyio.sleep(TEST_INACTIVITY_TIMEOUT / 3)
            registry.add_message(busy, make_message(busy, f"m{i}", i))

        assert not registry.room_exists(idle)
        assert registry.room_exists(busy)


async def test_many_rooms_never_share_codes() -> None:
    registry = RoomRegistry(inactivity_timeout=60)
    codes = [registry.create_room() for _ in range(100)]
    for code in itertools.islice(codes, 0, None, 2):
        registry.delete_room(code)
    codes += [registry.create_room() for _ in range(100)]

    live = registry.list_active_rooms()
    assert len(live) == len(set(live)) == 150

    for code in registry.list_active_rooms():
        registry.delete_room(code)
