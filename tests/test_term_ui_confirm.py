import contextlib

from prompt_toolkit import PromptSession
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput

from bank_reconciliation.term_ui import confirm_action, select_account_code


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def test_confirm_yes():
    with pipe_session() as (pipe, sess):
        pipe.send_text("y\r")
        assert confirm_action("Delete 1 duplicate record(s)?", session=sess) is True


def test_confirm_enter_takes_default():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert confirm_action("Proceed?", session=sess) is False
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert confirm_action("Proceed?", default=True, session=sess) is True


def test_confirm_no_spelled_out():
    with pipe_session() as (pipe, sess):
        pipe.send_text("No\r")
        assert confirm_action("Proceed?", default=True, session=sess) is False


def test_select_account_code_accepts_default_with_enter():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert select_account_code(["7000", "7010"], default="7000", session=sess) == "7000"


def test_select_account_code_typed_value():
    with pipe_session() as (pipe, sess):
        # Ctrl-A (home), Ctrl-K (kill to end), type a code, Enter
        pipe.send_text("\x01\x0b6100\r")
        assert select_account_code(["7000"], default="7000", session=sess) == "6100"


def test_select_account_code_empty_answer_skips():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert select_account_code(["7000"], session=sess) is None
