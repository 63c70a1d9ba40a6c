import os
from dataclasses import dataclass

from rich.pretty import pprint

from flagbind import *
from flagbind.logs import configure


@dataclass
class Object:
    string1: str = flag("string1", "", usage="string1 if squashed, otherwise nested.string1")
    string2: str = flag("string2", "", usage="string2 if squashed, otherwise nested.string2")


@dataclass
class Flags:
    text: str = flag("string", "", usage="string")
    filepath: str = flag("filepath", "", usage="filepath", validate="required,file=absolute,file=exists")
    number: int = flag("int", 0, usage="int")
    enabled: bool = flag("bool", False, usage="bool", env="BOOL")
    items: list[str] = flag("list", factory=list, usage="list")
    nested: Object = flag("nested", factory=Object, usage="nested")
    squashed: Object = flag(SQUASH, factory=Object, usage="nested")
    pairs: dict[str, str] = flag("map", factory=dict, usage="map")


def execute(context, flags):
    pprint(flags, expand_all=True)
    pprint({"remaining args": remaining(context)})


commands = Commands(
    Command("print-args", Flags(), execute, usage="print the provided arguments if they validate ok"),
    CommandGroup("more"),
    shell=True,
    colorful=True,
)


if __name__ == '__main__':
    if os.environ.get("FLAGBIND_DEBUG"):
        configure()
    commands.run()
