from storebot.services.user_state import UserStateStore


class TestUserStateStore:
    def test_set_and_get(self):
        states = UserStateStore()
        states.set(1, "deposit_amount")
        assert states.get(1)["step"] == "deposit_amount"
        assert states.get(2) is None

    def test_advance_keeps_earlier_data(self):
        states = UserStateStore()
        states.set(1, "product_name")
        states.advance(1, "product_description", name="Ebook")
        state = states.advance(1, "product_price", description="A long description")
        assert state["step"] == "product_price"
        assert state["data"] == {"name": "Ebook", "description": "A long description"}

    def test_expired_state_is_dropped(self):
        states = UserStateStore(ttl_seconds=60)
        states.set(1, "deposit_proof", deposit_id="abc")
        states._states[1]["updated_at"] -= 61
        assert states.get(1) is None
        assert 1 not in states._states

    def test_clear(self):
        states = UserStateStore()
        states.set(1, "reject_order", order_id="ORD-1")
        states.clear(1)
        states.clear(1)
        assert states.get(1) is None
