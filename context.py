from ast_nodes import Text


def implicit_text_label(i):
    return f"Text_{i}"


class CompileContext:
    """Per-compilation state shared by the parser and the compiler.

    Holds the label counter, the implicit text pool and the set of names
    already taken. Every generated name skips the taken ones, so it never
    lands on a name defined elsewhere in the output. A fresh context is made for
    every compilation so labels never collide across outputs that get
    concatenated later.
    """

    def __init__(self):
        self._label_id = 0
        self.implicit_texts = []  # list[Text], discovery order
        self.taken = set()        # declared or generated names

    def reserve(self, name):
        self.taken.add(name)

    def new_label(self, prefix):
        while True:
            name = f"{prefix}_{self._label_id}"
            self._label_id += 1
            if name not in self.taken:
                self.taken.add(name)
                return name

    def claim(self, name):
        # name itself if free, else the first free name_1, name_2, ...
        candidate = name
        n = 0
        while candidate in self.taken:
            n += 1
            candidate = f"{name}_{n}"
        self.taken.add(candidate)
        return candidate

    def add_implicit_text(self, value, string_type=None):
        name = implicit_text_label(len(self.implicit_texts))
        self.implicit_texts.append(Text(name, value, string_type, is_global=False))
        self.taken.add(name)
        return name
