import os
import unittest
from unittest import mock

from examprep.core.config import ModelConfig, RoleModelConfig
from examprep.core.dspy_runtime import DSPyConfigurationError, build_dspy_lm, configure_dspy_models


class ConfigureDSPyModelsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model_cfg = ModelConfig()

    @mock.patch("examprep.core.dspy_runtime.dspy")
    def test_configures_generator_and_grader(self, mock_dspy) -> None:
        handles = configure_dspy_models(self.model_cfg, api_key="sk-test")

        self.assertEqual(set(handles), {"generator", "grader"})
        self.assertEqual(mock_dspy.LM.call_count, 2)
        mock_dspy.settings.configure.assert_called_once_with(lm=handles["generator"])

    @mock.patch("examprep.core.dspy_runtime.dspy")
    def test_role_temperatures_and_prefix(self, mock_dspy) -> None:
        configure_dspy_models(self.model_cfg, api_key="sk-test")

        generator_call, grader_call = mock_dspy.LM.call_args_list
        self.assertEqual(generator_call.args[0], "openai/gpt-4o-mini")
        self.assertEqual(generator_call.kwargs["temperature"], 0.7)
        self.assertEqual(grader_call.kwargs["temperature"], 0.25)
        self.assertEqual(grader_call.kwargs["max_tokens"], 1400)

    def test_missing_api_key_raises(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(DSPyConfigurationError):
                configure_dspy_models(self.model_cfg)

    @mock.patch("examprep.core.dspy_runtime.dspy")
    def test_role_specific_api_key_envs(self, mock_dspy) -> None:
        cfg = ModelConfig(
            generator={"provider": "dspy", "model": "gpt-4o", "api_key_env": "OPENAI_API_KEY_GEN_CUSTOM"},
            grader={"provider": "dspy", "model": "anthropic/claude-like"},
        )
        with mock.patch.dict(
            os.environ,
            {"OPENAI_API_KEY_GEN_CUSTOM": "sk-gen", "OPENAI_API_KEY": "sk-shared"},
            clear=True,
        ):
            configure_dspy_models(cfg)

        generator_call, grader_call = mock_dspy.LM.call_args_list
        self.assertEqual(generator_call.kwargs["api_key"], "sk-gen")
        self.assertEqual(grader_call.kwargs["api_key"], "sk-shared")
        self.assertEqual(grader_call.args[0], "anthropic/claude-like")

    @mock.patch("examprep.core.dspy_runtime.dspy")
    def test_extra_kwargs_and_api_base_forwarded(self, mock_dspy) -> None:
        role = RoleModelConfig(api_base="https://proxy/v1", top_p=0.5)

        build_dspy_lm(role, api_key="sk", role_name="grader")

        kwargs = mock_dspy.LM.call_args.kwargs
        self.assertEqual(kwargs["api_base"], "https://proxy/v1")
        self.assertEqual(kwargs["top_p"], 0.5)


if __name__ == "__main__":
    unittest.main()
