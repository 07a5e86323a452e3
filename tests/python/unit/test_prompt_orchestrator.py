import unittest

from services.deployments.orchestrator import PromptOrchestrator


def _line(text: str, kind: str = "output") -> dict:
    return {"type": kind, "data": text, "timestamp": 0}


class TestPromptOrchestrator(unittest.TestCase):
    def setUp(self) -> None:
        self.sent = []
        self.orch = PromptOrchestrator(self.sent.append)
        self.orch.begin()

    def test_plain_lines_leave_state_idle(self) -> None:
        self.assertIsNone(self.orch.handle_event(_line("Downloading model...")))
        self.assertEqual(self.orch.prompt_state, "idle")
        self.assertEqual(self.orch.state, "deploying")

    def test_confirm_yes_prompt(self) -> None:
        prompt = self.orch.handle_event(_line("Model fits! Proceed? [Y/n]"))

        self.assertEqual(prompt.kind, "confirm-yes")
        self.assertEqual(self.orch.prompt_state, "awaiting-prompt-answer")
        self.assertEqual(self.orch.default_answer, "y")
        self.assertEqual(self.orch.confirm(), "y")
        self.assertEqual(self.sent, ["y"])
        self.assertIsNone(self.orch.pending)

    def test_confirm_no_prompt_defaults_to_no(self) -> None:
        self.orch.handle_event(_line("Continue anyway? [y/N]"))
        self.assertEqual(self.orch.default_answer, "n")

        self.assertEqual(self.orch.cancel(), "n")
        self.assertEqual(self.sent, ["n"])

    def test_danger_prompt_requires_exact_keyword(self) -> None:
        self.orch.handle_event(_line("Type CONFIRM to proceed.", kind="error"))

        self.assertFalse(self.orch.can_confirm("confirm"))
        self.assertFalse(self.orch.can_confirm(" CONFIRM"))
        with self.assertRaises(ValueError):
            self.orch.confirm("yes")
        self.assertEqual(self.sent, [])

        self.assertEqual(self.orch.confirm("CONFIRM"), "CONFIRM")
        self.assertEqual(self.sent, ["CONFIRM"])

    def test_danger_prompt_cancel_sends_cancel(self) -> None:
        self.orch.handle_event(_line("Type CONFIRM to proceed."))
        self.assertEqual(self.orch.cancel(), "cancel")
        self.assertEqual(self.sent, ["cancel"])

    def test_text_input_prompt(self) -> None:
        self.orch.handle_event(_line("Enter the parameter count in billions (e.g., 7 for 7B):"))

        self.assertFalse(self.orch.can_confirm("   "))
        self.assertEqual(self.orch.confirm("7"), "7")
        self.assertEqual(self.sent, ["7"])

    def test_text_input_cancel_sends_nothing(self) -> None:
        self.orch.handle_event(_line("Enter the parameter count in billions:"))

        self.assertIsNone(self.orch.cancel())
        self.assertEqual(self.sent, [])
        self.assertEqual(self.orch.prompt_state, "idle")

    def test_last_prompt_wins(self) -> None:
        self.orch.handle_event(_line("Proceed? [Y/n]"))
        self.orch.handle_event(_line("Continue anyway? [y/N]"))

        self.assertEqual(self.orch.pending.kind, "confirm-no")

    def test_complete_event_sets_final_state(self) -> None:
        self.orch.handle_event(_line("Proceed? [Y/n]"))
        self.orch.handle_event({"type": "complete", "data": "failed", "timestamp": 0})

        self.assertEqual(self.orch.state, "failed")
        self.assertIsNone(self.orch.pending)

    def test_answer_without_prompt(self) -> None:
        with self.assertRaises(RuntimeError):
            self.orch.confirm()
        self.assertFalse(self.orch.can_confirm())


if __name__ == "__main__":
    unittest.main()
