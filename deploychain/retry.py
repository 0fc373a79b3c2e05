from typing import Callable, Type, TypeVar

from deploychain.exceptions import ToolchainFailure

Result = TypeVar("Result")


def with_retry(
    max_attempts: int,
    operation: Callable[[], Result],
    failure: Type[ToolchainFailure],
    label: str,
) -> Result:
    """
    Calls operation until it succeeds, at most max_attempts times in a row.

    Attempts are immediate and sequential. The result of the first successful attempt
    is returned as is; once every attempt has failed, the last error is raised as the
    cause of the given failure type, annotated with the label and the attempt count.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    last_error = None
    for attempt in range(1, max_attempts + 1):
        print(f"(i) {label} - attempt {attempt}/{max_attempts}")
        try:
            result = operation()
        except Exception as e:
            print(f"(!) {label} - attempt {attempt}/{max_attempts} failed: {e}")
            last_error = e
            continue

        print(f"(i) {label} - succeeded on attempt {attempt}")
        return result

    print(f"(!) {label} - giving up after {max_attempts} attempt(s)")
    raise failure(label=label, attempts=max_attempts, cause=last_error) from last_error
