import pytest

from baton import Usage, estimate_cost


class TestUsage:
  def test_add_accumulates(self):
    usage = Usage(1, 10, 5, 15)
    usage.add(Usage(1, 20, 10, 30))

    assert usage == Usage(2, 30, 15, 45)

  def test_add_tokens_defaults_total(self):
    usage = Usage().add_tokens(input_tokens=7, output_tokens=3)
    assert usage == Usage(1, 7, 3, 10)

  def test_counters_never_decrease(self):
    usage = Usage(1, 10, 5, 15)
    usage.add_tokens(input_tokens=-4, output_tokens=-1, total_tokens=-5)

    assert usage.input_tokens == 10
    assert usage.output_tokens == 5
    assert usage.total_tokens == 15
    assert usage.requests == 2

  def test_missing_total_is_computed_from_clamped_counts(self):
    usage = Usage().add_tokens(input_tokens=-5, output_tokens=7, total_tokens=0, requests=0)
    assert usage == Usage(1, 0, 7, 7)

  def test_to_dict(self):
    assert Usage(1, 2, 3, 5).to_dict() == {"requests": 1, "input_tokens": 2, "output_tokens": 3, "total_tokens": 5}


class TestEstimateCost:
  def test_known_model_family(self):
    usage = Usage(1, 1_000_000, 1_000_000, 2_000_000)
    assert estimate_cost(usage, "gpt-4o-mini") == pytest.approx(12.5)
    assert estimate_cost(usage, "anthropic/claude-3-5-sonnet") == pytest.approx(18.0)

  def test_unknown_model_uses_default_pricing(self):
    usage = Usage(1, 2_000_000, 0, 2_000_000)
    assert estimate_cost(usage, "my-local-model") == pytest.approx(1.0)
    assert estimate_cost(usage, None) == pytest.approx(1.0)
