import json
from pathlib import Path
from typing import Any


class ContractUtility:
    """
    Utility for loading contract ABIs shipped with the watcher.

    ABIs live as JSON files in the package's ``contracts`` folder, either as a
    bare ABI list or as a build artifact with an ``abi`` key.
    """

    def __init__(self, contracts_dir: Path | None = None) -> None:
        """
        Initialize the ContractUtility.

        Args:
            contracts_dir: Folder holding the ABI files (defaults to the package's contracts folder)
        """
        self.contracts_dir = contracts_dir or (
            Path(__file__).parent.parent / "contracts"
        ).resolve()

    def get_contract_abi(self, contract_name: str) -> list[dict[str, Any]]:
        """Fetches ABI of the given contract from the contracts folder.

        Args:
            contract_name: Name of the contract (without .json extension)

        Returns:
            List of ABI dictionaries for the contract

        Raises:
            FileNotFoundError: If the contract file doesn't exist
            json.JSONDecodeError: If the contract file is invalid JSON
        """
        contract_path: Path = self.contracts_dir / f"{contract_name}.json"

        with contract_path.open() as file:
            contract_data: Any = json.load(file)

        if isinstance(contract_data, dict):
            return contract_data["abi"]
        return contract_data

    def get_event_abi(self, contract_name: str, event_name: str) -> dict[str, Any]:
        """Find a single event entry in a contract ABI.

        Raises:
            ValueError: If the event is not in the ABI
        """
        for entry in self.get_contract_abi(contract_name):
            if entry.get("type") == "event" and entry.get("name") == event_name:
                return entry
        raise ValueError(f"Event {event_name} not found in {contract_name} ABI")
