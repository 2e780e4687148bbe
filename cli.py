import sys
import traceback

from compiler import Compiler, compile_source
from context import CompileContext
from errors import CompileError
from lexer import Lexer
from parser import Parser
from resolver import Resolver
from writer import format_program


# Simple AST printer (so you can SEE what the parser built)
def ast_to_dict(node):
    if node is None:
        return None

    t = node.__class__.__name__
    d = {"type": t}

    if t == "Program":
        d["statements"] = [ast_to_dict(s) for s in node.statements]
        d["texts"] = [{"name": x.name, "value": x.value} for x in node.texts]
    elif t == "ScriptStatement":
        d["name"] = node.name.value if node.name is not None else None
        d["global"] = node.is_global
        d["body"] = ast_to_dict(node.body)
    elif t == "Block":
        d["statements"] = [ast_to_dict(s) for s in node.statements]
    elif t == "Command":
        d["name"] = node.name.value
        d["args"] = list(node.args)
    elif t == "Raw":
        d["value"] = node.value
        d["global"] = node.is_global
    elif t == "TextStatement":
        d["name"] = node.name.value
        d["value"] = node.value
        if node.string_type:
            d["string_type"] = node.string_type
    elif t == "MovementStatement":
        d["name"] = node.name.value
        d["commands"] = list(node.commands)
    elif t == "MartStatement":
        d["name"] = node.name.value
        d["items"] = list(node.items)
    elif t == "If":
        d["condition"] = ast_to_dict(node.consequence)
        d["elifs"] = [ast_to_dict(c) for c in node.elif_consequences]
        d["else_block"] = ast_to_dict(node.else_block)
    elif t in ("While", "DoWhile"):
        d["condition"] = ast_to_dict(node.consequence)
    elif t == "ConditionExpression":
        d["expression"] = str(node.expression)
        d["body"] = ast_to_dict(node.body)
    elif t == "Switch":
        d["operand"] = node.operand
        d["cases"] = [
            {"value": "default" if c.is_default else c.value, "body": ast_to_dict(c.body)}
            for c in node.cases
        ]
    elif t in ("Break", "Continue"):
        d["target"] = node.target
    elif t == "MapScriptsStatement":
        d["name"] = node.name.value
        d["map_scripts"] = [
            {"type": m.type, "name": m.name, "script": ast_to_dict(m.script)} for m in node.map_scripts
        ]
        d["tables"] = [
            {
                "type": table.type,
                "entries": [
                    {"condition": e.condition, "comparison": e.comparison, "name": e.name,
                     "script": ast_to_dict(e.script)}
                    for e in table.entries
                ],
            }
            for table in node.table_map_scripts
        ]
    else:
        d["raw"] = str(node)

    return d


def is_scalar(value):
    return not isinstance(value, (dict, list))


def pretty(obj, indent=0):
    # lists of plain values (args, items) stay on one line
    sp = "  " * indent
    if isinstance(obj, list):
        return "\n".join(f"{sp}-\n{pretty(item, indent + 1)}" for item in obj)
    if not isinstance(obj, dict):
        return f"{sp}{obj}"

    lines = []
    for key, value in obj.items():
        if is_scalar(value):
            lines.append(f"{sp}{key}: {value}")
        elif isinstance(value, list) and all(is_scalar(v) for v in value):
            lines.append(f"{sp}{key}: [{', '.join(str(v) for v in value)}]")
        else:
            lines.append(f"{sp}{key}:")
            lines.append(pretty(value, indent + 1))
    return "\n".join(lines)


def read_source(path):
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def cmd_parse(path, debug=False):
    try:
        code = read_source(path)

        # parse and resolve, so break/continue targets show up in the tree
        lexer = Lexer(code)
        parser = Parser(lexer, CompileContext())
        program = parser.parse()
        Resolver().resolve(program)

        tree = ast_to_dict(program)
        print(pretty(tree))
    except (CompileError, OSError) as e:
        if debug:
            traceback.print_exc()
        else:
            print(f"Parse error: {e}", file=sys.stderr)
        sys.exit(1)


def cmd_build(path, out_path=None, debug=False):
    try:
        code = read_source(path)
    except OSError as e:
        print(f"Build error: {e}", file=sys.stderr)
        sys.exit(1)

    if debug:
        # run the stages directly so the traceback shows where it failed
        try:
            context = CompileContext()
            program = Parser(Lexer(code), context).parse()
            arena = Resolver().resolve(program)
            output = Compiler(context).compile(program, arena)
        except CompileError:
            traceback.print_exc()
            sys.exit(1)
    else:
        output, errors = compile_source(code)
        if errors:
            for err in errors:
                print(f"Build error: {err}", file=sys.stderr)
            sys.exit(1)

    text = format_program(output)
    if out_path is None:
        sys.stdout.write(text)
        return

    try:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(text)
    except OSError as e:
        print(f"Build error: {e}", file=sys.stderr)
        sys.exit(1)


def usage():
    print("Usage:")
    print("  flatscript parse <file.pory>")
    print("  flatscript build <file.pory> [-o <out.inc>]")
    print("  (optional) --debug to show Python traceback")
    sys.exit(1)


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)

    debug = False
    if "--debug" in argv:
        debug = True
        argv.remove("--debug")

    if len(argv) < 2:
        usage()

    cmd = argv[0]
    path = argv[1]
    extra = argv[2:]

    if cmd == "parse":
        if extra:
            print("Parse does not accept extra arguments.")
            sys.exit(1)
        cmd_parse(path, debug=debug)
    elif cmd == "build":
        out_path = None
        if extra:
            if len(extra) != 2 or extra[0] not in ("-o", "--output"):
                print("Build only accepts -o <out file>.")
                sys.exit(1)
            out_path = extra[1]
        cmd_build(path, out_path=out_path, debug=debug)
    else:
        print(f"Unknown command: {cmd}")
        sys.exit(1)


if __name__ == "__main__":
    main()
