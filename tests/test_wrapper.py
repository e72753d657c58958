"""Tests for the model specification and the sampling wrapper base class."""

import pytest

from psisloo import ModelSpec, SamplingMode, SamplingWrapper


class TestModelSpec:
    def test_defaults(self):
        spec = ModelSpec("pooled")
        assert spec.mode is SamplingMode.POSTERIOR
        assert spec.fit_flag == 1
        assert spec.pooled
        assert dict(spec.hyperparameters) == {}

    def test_hyperparameters_are_frozen(self):
        spec = ModelSpec("pooled", hyperparameters={"alpha_sd": 10})
        assert spec.hyperparameters["alpha_sd"] == 10.0
        assert isinstance(spec.hyperparameters["alpha_sd"], float)
        with pytest.raises(TypeError):
            spec.hyperparameters["alpha_sd"] = 1

    def test_with_mode(self):
        spec = ModelSpec("pooled")
        prior_spec = spec.with_mode("prior_only")
        assert prior_spec.mode is SamplingMode.PRIOR_ONLY
        assert prior_spec.fit_flag == 0
        assert spec.mode is SamplingMode.POSTERIOR

    def test_with_hyperparameters(self):
        spec = ModelSpec("pooled", hyperparameters={"alpha_sd": 10, "beta_sd": 10})
        new_spec = spec.with_hyperparameters(alpha_sd=1)
        assert dict(new_spec.hyperparameters) == {"alpha_sd": 1.0, "beta_sd": 10.0}
        assert spec.hyperparameters["alpha_sd"] == 10.0

    def test_to_sampler_data(self):
        spec = ModelSpec(
            "hierarchical", hyperparameters={"sigma_sd": 1}, group_key="county", mode="prior_only"
        )
        assert not spec.pooled
        sampler_data = spec.to_sampler_data({"y": [1.0, 2.0], "county": [0, 1]})
        assert sampler_data == {"y": [1.0, 2.0], "county": [0, 1], "sigma_sd": 1.0, "fit": 0}

    def test_to_sampler_data_custom_flag(self):
        spec = ModelSpec("pooled", fit_flag_name="likelihood")
        assert spec.to_sampler_data() == {"likelihood": 1}

    @pytest.mark.parametrize("key", ["fit", "sigma_sd"])
    def test_to_sampler_data_clash(self, key):
        spec = ModelSpec("pooled", hyperparameters={"sigma_sd": 1})
        with pytest.raises(ValueError, match="clash"):
            spec.to_sampler_data({key: 3})

    def test_to_sampler_data_missing_group_key(self):
        spec = ModelSpec("hierarchical", group_key="county")
        with pytest.raises(KeyError, match="county"):
            spec.to_sampler_data({"y": [1.0]})


class TestSamplingWrapper:
    def test_base_methods_raise(self):
        wrapper = SamplingWrapper(model=None)
        with pytest.raises(NotImplementedError):
            wrapper.sample({})
        with pytest.raises(NotImplementedError):
            wrapper.get_inference_data(None)
        with pytest.raises(NotImplementedError):
            wrapper.sel_observations(0)
        with pytest.raises(NotImplementedError):
            wrapper.log_likelihood__i(None, None)

    def test_check_implemented_methods(self):
        class SampleOnly(SamplingWrapper):
            def sample(self, modified_observed_data):
                return modified_observed_data

        wrapper = SampleOnly(model=None, sample_kwargs={"seed": 3})
        assert wrapper.sample_kwargs == {"seed": 3}
        assert wrapper.check_implemented_methods(["sample", "get_inference_data"]) == [
            "get_inference_data"
        ]
