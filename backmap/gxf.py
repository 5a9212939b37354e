GFF3_FORMAT = "gff3"
GTF_FORMAT = "gtf"

# standard feature types
GENE = "gene"
TRANSCRIPT = "transcript"
EXON = "exon"
CDS = "CDS"
START_CODON = "start_codon"
UTR = "UTR"
STOP_CODON = "stop_codon"
STOP_CODON_REDEFINED_AS_SELENOCYSTEINE = "stop_codon_redefined_as_selenocysteine"
SELENOCYSTEINE = "Selenocysteine"

# standard attribute names
ID_ATTR = "ID"
PARENT_ATTR = "Parent"
GENE_ID_ATTR = "gene_id"
GENE_TYPE_ATTR = "gene_type"
GENE_BIOTYPE_ATTR = "gene_biotype"
TRANSCRIPT_ID_ATTR = "transcript_id"
TRANSCRIPT_TYPE_ATTR = "transcript_type"
TRANSCRIPT_BIOTYPE_ATTR = "transcript_biotype"
EXON_ID_ATTR = "exon_id"
TAG_ATTR = "tag"
LEVEL_ATTR = "level"

STRANDS = ("+", "-", ".")
PHASES = ("0", "1", "2", ".")

_MISSING = object()


class GxfParseError(Exception):
    pass


def get_base_id(feature_id):
    if feature_id is None:
        return None
    if feature_id.endswith("_PAR_Y"):
        feature_id = feature_id[:-6]
    idot = feature_id.rfind(".")
    base_id = feature_id if idot < 0 else feature_id[0:idot]
    if base_id.startswith("ENSGR") or base_id.startswith("ENSTR"):
        base_id = base_id[0:4] + "0" + base_id[5:]
    return base_id


def check_attr_name(name):
    if name is None or name == "":
        raise GxfParseError("empty attribute name")


def check_attr_value(value):
    if value is None or value == "":
        raise GxfParseError("empty attribute value")


class AttrVal(object):
    def __init__(self, name, vals, quoted=False):
        check_attr_name(name)
        if isinstance(vals, str):
            vals = [vals]
        self.name = name
        self.vals = []
        self.quoted = quoted
        for val in vals:
            self.add_val(val)
        if len(self.vals) == 0:
            raise GxfParseError("attribute has no values: " + name)

    @property
    def val(self):
        return self.vals[0]

    def add_val(self, val):
        check_attr_value(val)
        self.vals.append(val)

    def copy(self):
        return AttrVal(self.name, list(self.vals), self.quoted)

    def __repr__(self):
        return "AttrVal({}={})".format(self.name, ",".join(self.vals))


class AttrVals(list):
    """Ordered attributes of a record.  A name normally occurs once, with
    multiple values held by the AttrVal."""

    def exists(self, name):
        return self.find_idx(name) >= 0

    def find_idx(self, name):
        for i in range(len(self)):
            if self[i].name == name:
                return i
        return -1

    def find(self, name):
        i = self.find_idx(name)
        if i < 0:
            return None
        return self[i]

    def get(self, name):
        attr_val = self.find(name)
        if attr_val is None:
            raise GxfParseError("Attribute not found: " + name)
        return attr_val

    def get_value(self, name, default=_MISSING):
        attr_val = self.find(name)
        if attr_val is None:
            if default is _MISSING:
                raise GxfParseError("Attribute not found: " + name)
            return default
        return attr_val.val

    def add(self, attr_val):
        self.append(attr_val.copy())

    def update(self, attr_val):
        idx = self.find_idx(attr_val.name)
        if idx < 0:
            self.add(attr_val)
        else:
            self[idx] = attr_val.copy()

    def as_dict(self):
        attr_dict = {}
        for attr_val in self:
            attr_dict.setdefault(attr_val.name, []).extend(attr_val.vals)
        return attr_dict

    def copy(self):
        return AttrVals([attr_val.copy() for attr_val in self])


class GxfLine(object):

    def __init__(self, line):
        self.line = line

    def __str__(self):
        return self.line

    def __repr__(self):
        return "GxfLine({!r})".format(self.line)


class GxfFeature(object):
    """A row parsed from a GFF3 or GTF file.  Columns are read-only, only the
    attributes may be modified."""

    def __init__(self, seqid, source, featuretype, start, end, score, strand, phase, attrs):
        if start > end:
            raise GxfParseError("feature start {} greater than end {}".format(start, end))
        if strand not in STRANDS:
            raise GxfParseError("invalid strand: " + str(strand))
        if phase not in PHASES:
            raise GxfParseError("invalid phase: " + str(phase))
        self._seqid = seqid
        self._source = source
        self._featuretype = featuretype
        self._start = start
        self._end = end
        self._score = score
        self._strand = strand
        self._phase = phase
        self.attrs = attrs

    @property
    def seqid(self):
        return self._seqid

    @property
    def source(self):
        return self._source

    @property
    def featuretype(self):
        return self._featuretype

    @property
    def start(self):
        return self._start

    @property
    def end(self):
        return self._end

    @property
    def score(self):
        return self._score

    @property
    def strand(self):
        return self._strand

    @property
    def phase(self):
        return self._phase

    def clone(self, seqid=None, start=None, end=None, strand=None, phase=None):
        return GxfFeature(self._seqid if seqid is None else seqid, self._source, self._featuretype,
                          self._start if start is None else start, self._end if end is None else end,
                          self._score, self._strand if strand is None else strand,
                          self._phase if phase is None else phase, self.attrs.copy())

    def has_attr(self, name):
        return self.attrs.exists(name)

    def find_attr(self, name):
        return self.attrs.find(name)

    def get_attr(self, name):
        return self.attrs.get(name)

    def get_attr_value(self, name, default=_MISSING):
        return self.attrs.get_value(name, default)

    @property
    def type_id(self):
        if self._featuretype == GENE:
            attr_names = (GENE_ID_ATTR, ID_ATTR)
        elif self._featuretype == EXON:
            attr_names = (EXON_ID_ATTR, ID_ATTR)
        else:
            attr_names = (TRANSCRIPT_ID_ATTR, ID_ATTR)
        for name in attr_names:
            value = self.attrs.get_value(name, None)
            if value is not None:
                return value
        return None

    @property
    def type_biotype(self):
        if self._featuretype == GENE:
            attr_names = (GENE_TYPE_ATTR, GENE_BIOTYPE_ATTR)
        else:
            attr_names = (TRANSCRIPT_TYPE_ATTR, TRANSCRIPT_BIOTYPE_ATTR)
        for name in attr_names:
            value = self.attrs.get_value(name, None)
            if value is not None:
                return value
        return None

    def size(self):
        return (self._end - self._start) + 1

    def overlaps(self, other):
        if self._seqid != other.seqid or self._strand != other.strand:
            return False
        return self._start <= other.end and self._end >= other.start

    def location_str(self):
        return "{}:{}-{}".format(self._seqid, self._start, self._end)

    def base_columns(self):
        return [self._seqid, self._source, self._featuretype, str(self._start), str(self._end), self._score,
                self._strand, self._phase]

    def __str__(self):
        # GFF3 style, for debugging only
        attrs_str = ";".join(attr_val.name + "=" + ",".join(attr_val.vals) for attr_val in self.attrs)
        return "\t".join(self.base_columns() + [attrs_str])

    def __repr__(self):
        return "GxfFeature({})".format(self.__str__())


