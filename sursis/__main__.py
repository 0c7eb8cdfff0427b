import sys
from logging import getLogger

from .config import load_settings
from .gates import ExitCode
from .installer import Launcher
from .prompt import Prompter, PromptVariant
from .store import PostponementStore
from .utils import configure_logging
from .workflow import run

LOG = getLogger(__name__)


def main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    LOG.info("Starting sursis for %s", settings.target_name)
    prompter = Prompter(settings)
    try:
        code = run(
            settings,
            PostponementStore(settings.state_file),
            prompter,
            Launcher(settings),
        )
    except Exception as error:
        LOG.exception("Unexpected failure: %s", error)
        prompter.notify(PromptVariant.ERROR)
        code = ExitCode.UNKNOWN_ERROR
    LOG.info("Exiting with %s (%s)", int(code), code.name)
    sys.exit(int(code))


if __name__ == "__main__":
    main()
