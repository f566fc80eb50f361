import pytest
from pydantic import ValidationError

from tangent.models import GenerationParameters, Profile, SeedMessage, StoredMessage


class TestGenerationParameters:
    def test_defaults_mean_api_default(self):
        params = GenerationParameters()
        assert params.temperature == 0
        assert params.stop == []
        assert params.logit_bias == {}

    def test_stop_limit(self):
        GenerationParameters(stop=["a", "b", "c", "d"])
        with pytest.raises(ValidationError) as exc:
            GenerationParameters(stop=["a", "b", "c", "d", "e"])
        assert "too many stop values provided, maximum 4 allowed" in str(exc.value)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("temperature", 2.5),
            ("top_p", 1.5),
            ("max_tokens", -1),
            ("presence_penalty", -3),
            ("frequency_penalty", 2.1),
        ],
    )
    def test_ranges(self, field, value):
        with pytest.raises(ValidationError):
            GenerationParameters(**{field: value})

    def test_logit_bias_range(self):
        GenerationParameters(logit_bias={"50256": -100})
        with pytest.raises(ValidationError):
            GenerationParameters(logit_bias={"50256": 101})


class TestProfile:
    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            Profile.model_validate({"profile_name": "x", "colour": "blue"})

    def test_seed_roles_are_lowercased(self):
        seed = SeedMessage.model_validate({"role": "User", "content": "hi"})
        assert seed.role == "user"
        with pytest.raises(ValidationError):
            SeedMessage.model_validate({"role": "system", "content": "hi"})

    def test_vendor_is_checked(self):
        assert Profile(vendor="anthropic").vendor == "anthropic"
        with pytest.raises(ValidationError):
            Profile.model_validate({"vendor": "acme"})


class TestStoredMessage:
    def test_aliases_and_field_names(self):
        by_alias = StoredMessage.model_validate(
            {"id": "a", "parentId": "ROOT", "role": "user", "content": "hi", "authorName": "me", "isHead": True}
        )
        by_name = StoredMessage(id="a", parent_id="ROOT", role="user", content="hi", author_name="me", is_head=True)
        assert by_alias == by_name
