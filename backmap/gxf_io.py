from backmap import gxf
from backmap.gxf import AttrVal, AttrVals, GxfFeature, GxfLine, GxfParseError
from collections import deque
import gzip
import re

GTF_ATTR_RE = re.compile(r'^(\S+)\s+(.*)$')
NUMERIC_RE = re.compile(r'^-?[0-9]+(\.[0-9]+)?$')

# attributes that carry the PAR id hack in GTF
PAR_ID_ATTRS = (gxf.GENE_ID_ATTR, gxf.TRANSCRIPT_ID_ATTR)
PAR_ID_HACK_OLD = "old"
PAR_ID_HACK_CURRENT = "current"
PAR_Y_SEQIDS = ("chrY", "Y")


def open_file(file_name, mode='r'):
    if file_name.endswith(".gz"):
        return gzip.open(file_name, mode + 't')
    return open(file_name, mode)


def gxf_format_from_file_name(file_name):
    if file_name.endswith(".gff3") or file_name.endswith(".gff3.gz"):
        return gxf.GFF3_FORMAT
    elif file_name.endswith(".gtf") or file_name.endswith(".gtf.gz"):
        return gxf.GTF_FORMAT
    raise GxfParseError("expected an annotation file with an extension of .gff3, .gff3.gz, .gtf, or .gtf.gz: "
                        + file_name)


def is_quoted(value):
    return len(value) >= 2 and value[0] == '"' and value[-1] == '"'


def strip_quotes(value):
    if is_quoted(value):
        return value[1:-1]
    return value


def is_numeric(value):
    return NUMERIC_RE.match(value) is not None


def remove_par_id_hack(value):
    if value.startswith("ENSGR") or value.startswith("ENSTR"):
        return value[0:4] + "0" + value[5:]
    elif value.endswith("_PAR_Y"):
        return value[:-6]
    return value


def add_par_id_hack(value, par_id_hack_method):
    if par_id_hack_method == PAR_ID_HACK_OLD:
        if value[4] != "0":
            raise GxfParseError("can't apply old PAR id convention to " + value)
        return value[0:4] + "R" + value[5:]
    return value + "_PAR_Y"


def parse_gff3_attrs(attrs_str):
    attrs = AttrVals()
    for part in attrs_str.split(";"):
        part = part.strip()
        if part == "":
            continue
        i = part.find("=")
        if i < 0:
            raise GxfParseError("invalid GFF3 attribute \"" + part + "\"")
        name = part[0:i]
        if attrs.exists(name):
            raise GxfParseError("duplicate GFF3 attribute \"" + name + "\"")
        value = part[i + 1:]
        attrs.append(AttrVal(name, strip_quotes(value).split(","), is_quoted(value)))
    return attrs


def parse_gtf_attrs(attrs_str):
    attrs = AttrVals()
    for part in attrs_str.split(";"):
        part = part.strip()
        if part == "":
            continue
        match = GTF_ATTR_RE.match(part)
        if match is None:
            raise GxfParseError("invalid GTF attribute \"" + part + "\"")
        name, value = match.group(1), match.group(2)
        quoted = is_quoted(value)
        value = strip_quotes(value)
        if name in PAR_ID_ATTRS:
            value = remove_par_id_hack(value)
        attr_val = attrs.find(name)
        if attr_val is None:
            attrs.append(AttrVal(name, value, quoted))
        else:
            attr_val.add_val(value)
    return attrs


def parse_int_column(value, column_name):
    try:
        return int(value)
    except ValueError:
        raise GxfParseError("invalid " + column_name + " \"" + value + "\"")


class GxfParser(object):
    """Reads GFF3 or GTF files, returning GxfFeature or GxfLine records.
    Records returned with push() are read again, in order, before the
    remainder of the file."""

    def __init__(self, file_name, gxf_format=None):
        self.file_name = file_name
        self.gxf_format = gxf_format if gxf_format is not None else gxf_format_from_file_name(file_name)
        if self.gxf_format == gxf.GFF3_FORMAT:
            self.parse_attrs = parse_gff3_attrs
        else:
            self.parse_attrs = parse_gtf_attrs
        self.fh = open_file(file_name)
        self.line_num = 0
        self.pending = deque()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __iter__(self):
        record = self.next()
        while record is not None:
            yield record
            record = self.next()

    def close(self):
        if self.fh is not None:
            self.fh.close()
            self.fh = None

    def push(self, record):
        self.pending.append(record)

    def next(self):
        if len(self.pending) > 0:
            return self.pending.popleft()
        return self.read()

    def read(self):
        line = self.fh.readline()
        if line == "":
            return None
        self.line_num += 1
        line = line.rstrip("\r\n")
        if len(line) == 0 or line[0] == "#":
            return GxfLine(line)
        try:
            return self.parse_feature(line)
        except GxfParseError as e:
            raise GxfParseError("{}:{}: {}: {}".format(self.file_name, self.line_num, str(e), line))

    def parse_feature(self, line):
        columns = line.split("\t")
        if len(columns) != 9:
            raise GxfParseError("invalid row, expected 9 columns, found " + str(len(columns)))
        return GxfFeature(columns[0], columns[1], columns[2], parse_int_column(columns[3], "start"),
                          parse_int_column(columns[4], "end"), columns[5], columns[6], columns[7],
                          self.parse_attrs(columns[8]))


def format_gff3_attrs(attrs):
    return ";".join(attr_val.name + "=" + ",".join(attr_val.vals) for attr_val in attrs)


def has_par_y_tag(feature):
    if feature.seqid not in PAR_Y_SEQIDS:
        return False
    tag = feature.find_attr(gxf.TAG_ATTR)
    return tag is not None and "PAR" in tag.vals


class GxfWriter(object):
    """Writes records in GFF3 or GTF format.  GTF output drops the GFF3
    linkage attributes and restores the PAR id hack on chrY."""

    def __init__(self, file_name, gxf_format=None, par_id_hack_method=PAR_ID_HACK_CURRENT):
        self.file_name = file_name
        self.gxf_format = gxf_format if gxf_format is not None else gxf_format_from_file_name(file_name)
        self.par_id_hack_method = par_id_hack_method
        self.fh = open_file(file_name, 'w')
        if self.gxf_format == gxf.GFF3_FORMAT:
            self.write_line("##gff-version 3")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self):
        if self.fh is not None:
            self.fh.close()
            self.fh = None

    def write_line(self, line):
        self.fh.write(line)
        self.fh.write("\n")

    def write(self, record):
        if isinstance(record, GxfFeature):
            self.write_line(self.format_feature(record))
        elif not record.line.startswith("##gff-version"):
            self.write_line(record.line)

    def format_feature(self, feature):
        if self.gxf_format == gxf.GFF3_FORMAT:
            attrs_str = format_gff3_attrs(feature.attrs)
        else:
            attrs_str = self.format_gtf_attrs(feature)
        return "\t".join(feature.base_columns() + [attrs_str])

    def format_gtf_attrs(self, feature):
        is_par_y = has_par_y_tag(feature)
        attr_strs = []
        for attr_val in feature.attrs:
            if attr_val.name in (gxf.ID_ATTR, gxf.PARENT_ATTR, "remap_original_id"):
                continue
            for value in attr_val.vals:
                if is_par_y and attr_val.name in PAR_ID_ATTRS:
                    value = add_par_id_hack(value, self.par_id_hack_method)
                if attr_val.quoted or not is_numeric(value):
                    value = '"' + value + '"'
                attr_strs.append(attr_val.name + " " + value + ";")
        return " ".join(attr_strs)
