"""Loading and saving of chain datasets.

A dataset file is a JSON document holding the alphabet size and the list of
examples:

    {"num_states": 26, "examples": [{"x": [...], "y": [...]}, ...]}

``x`` is the flattened covariate (``len(y) * per_unit_dim`` numbers) and
``y`` the integer state sequence. `load_dataset` checks the structure of the
document itself and then the partition invariants of every example.
"""
import json

from .types import Dataset


def load_dataset(path: str) -> Dataset:
    """
    Loads a `Dataset` from a JSON file.

    Args:
        path: The path to the input JSON file.

    Returns:
        A validated `Dataset`.

    Raises:
        FileNotFoundError: If the file at the specified path does not exist.
        ValueError: If the file is not valid JSON.
        TypeError: If the JSON structure is incorrect (missing
                   ``num_states`` or ``examples``, or an example that is not
                   an object with ``x`` and ``y`` lists, or a ``y`` entry that is
                   not an integer).
        PreconditionViolation: If an example breaks the partition invariants.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise FileNotFoundError(f"Dataset file not found at: {path}")
    except json.JSONDecodeError as e:
        raise ValueError(f"Error decoding JSON from {path}: {e}")

    if not isinstance(data, dict):
        raise TypeError(f"Expected a JSON object at the root of {path}")
    num_states = data.get("num_states")
    if not isinstance(num_states, int):
        raise TypeError(f"Expected an integer 'num_states' key in {path}")
    items = data.get("examples")
    if not isinstance(items, list):
        raise TypeError(f"Expected an 'examples' key with a list of objects in {path}")

    covariates, labels = [], []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise TypeError(f"Example at index {i} in {path} is not a dictionary.")
        x, y = item.get("x"), item.get("y")
        if not isinstance(x, list) or not isinstance(y, list):
            raise TypeError(f"Example at index {i} in {path} needs 'x' and 'y' lists.")
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in y):
            raise TypeError(f"Example at index {i} in {path} has non-integer states in 'y'.")
        covariates.append(x)
        labels.append(y)

    return Dataset.from_sequences(covariates, labels, num_states)


def save_dataset(path: str, dataset: Dataset) -> None:
    """
    Saves a `Dataset` to a JSON file in the format `load_dataset` reads.

    Args:
        path: The destination path for the output JSON file.
        dataset: The dataset to save.
    """
    data = {
        "num_states": dataset.num_states,
        "examples": [{"x": x.tolist(), "y": y.tolist()} for x, y in dataset],
    }
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
