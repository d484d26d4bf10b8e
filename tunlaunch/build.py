from collections.abc import Sequence
import logging
import os
from pathlib import Path

from .common import Runner, exit_status, run_command
from .errors import BuildFailed

logger = logging.getLogger(__name__)


def build(
        cmd: Sequence[str] | None,
        artifact: str | os.PathLike[str],
        runner: Runner = run_command) -> Path:
    '''
    Run the build command and return the path of the executable it produces.
    cmd may be None to skip building and use an existing artifact.

    Raises BuildFailed with the build command's own exit code if it fails,
    or with code 1 if the artifact isn't an executable file afterwards.
    '''
    if cmd:
        logger.info('building: %s', ' '.join(cmd))
        result = runner(cmd)
        if result.returncode != 0:
            status = exit_status(result.returncode)
            if result.stderr:
                logger.error('%s', result.stderr.rstrip())
            raise BuildFailed(
                    f'build command exited with status {status}', status)

    path = Path(artifact)
    if not path.is_file() or not os.access(path, os.X_OK):
        raise BuildFailed(f'{path} is not an executable file')

    return path
