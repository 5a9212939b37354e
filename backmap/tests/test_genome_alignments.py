from backmap import genome_alignments
from backmap.genome_alignments import AlignmentFormatError, load_genome_alignments, project_through
import io
import os
import pytest

TEST_DIR = os.path.dirname(os.path.abspath(__file__))

REVERSE_PSL = "1000\t0\t0\t0\t0\t0\t0\t0\t-\tchr3\t1000\t0\t1000\tchrR\t1500\t0\t1000\t1\t1000,\t0,\t0,\n"


def write_file(tmp_path, file_name, text):
    path = tmp_path / file_name
    path.write_text(text)
    return str(path)


def test_read_psl():
    genome_alns = load_genome_alignments([os.path.join(TEST_DIR, "mapping.psl")])
    assert genome_alns.have_query("chr1")
    assert not genome_alns.have_query("chrUn")
    aln = genome_alns.alns_by_query["chr1"][0]
    assert (aln.query_start, aln.query_end, aln.target_start, aln.target_end) == (0, 8000, 1000, 9100)
    assert aln.aligned_bases() == 7800
    assert not aln.is_reverse


def test_read_psl_with_header(tmp_path):
    header = "psLayout version 3\n\nmatch\tmis-\n     \tmatch\n---------\n"
    psl_file = write_file(tmp_path, "aln.psl", header + REVERSE_PSL)
    genome_alns = load_genome_alignments([psl_file])
    assert genome_alns.num_alns == 1


def test_bad_psl(tmp_path):
    psl_file = write_file(tmp_path, "bad.psl", "1000\t0\t0\n")
    with pytest.raises(AlignmentFormatError):
        load_genome_alignments([psl_file])
    with pytest.raises(AlignmentFormatError):
        load_genome_alignments([write_file(tmp_path, "aln.txt", REVERSE_PSL)])


def test_project():
    aln = load_genome_alignments([os.path.join(TEST_DIR, "mapping.psl")]).alns_by_query["chr1"][0]
    mapped, unmapped = aln.project(2900, 3100)
    assert mapped == [(2900, 3000, 3900, 4000), (3000, 3100, 4100, 4200)]
    assert unmapped == []
    mapped, unmapped = aln.project(4900, 5300)
    assert mapped == [(4900, 5000, 6000, 6100), (5200, 5300, 6300, 6400)]
    assert unmapped == [(5000, 5200)]
    mapped, unmapped = aln.project(9000, 9100)
    assert mapped == []
    assert unmapped == [(9000, 9100)]


def test_project_reverse(tmp_path):
    aln = load_genome_alignments([write_file(tmp_path, "rev.psl", REVERSE_PSL)]).alns_by_query["chr3"][0]
    assert aln.is_reverse
    mapped, unmapped = aln.project(100, 200)
    assert mapped == [(100, 200, 800, 900)]
    swapped = aln.swap()
    assert swapped.query_name == "chrR"
    assert swapped.project(800, 900)[0] == [(800, 900, 100, 200)]


def test_project_through_tracks_source(tmp_path):
    aln = load_genome_alignments([write_file(tmp_path, "rev.psl", REVERSE_PSL)]).alns_by_query["chr3"][0]
    pieces, unmapped = project_through([aln, aln.swap()], 100, 200)
    assert pieces == [(100, 200, 100, 200, False)]
    assert unmapped == []
    pieces, unmapped = project_through([aln], 950, 1100)
    assert pieces == [(950, 1000, 0, 50, True)]
    assert unmapped == [[1000, 1100]]


def test_project_features():
    genome_alns = load_genome_alignments([os.path.join(TEST_DIR, "mapping.psl")])
    exons_mapping = genome_alns.project_features("chr1", "T3.1", [[4901, 5100], [5301, 5400]], "+")
    assert exons_mapping.src_aln.query_size == 300
    mapped_aln = exons_mapping.get_mapped()
    assert (mapped_aln.target_name, mapped_aln.target_start, mapped_aln.target_end) == ("chr1", 6000, 6500)
    assert mapped_aln.aligned_bases() == 200
    assert not mapped_aln.query_fully_mapped()
    assert genome_alns.project_features("chrUn", "T4.1", [[101, 300]], "+") is None
    assert not genome_alns.project_features("chr1", "T5.1", [[9001, 9100]], "+").have_mappings()


def test_write_psl(tmp_path):
    aln = load_genome_alignments([write_file(tmp_path, "rev.psl", REVERSE_PSL)]).alns_by_query["chr3"][0]
    out = io.StringIO()
    genome_alignments.write_psl(aln, out)
    assert out.getvalue() == REVERSE_PSL
    aln = load_genome_alignments([os.path.join(TEST_DIR, "mapping.psl")]).alns_by_query["chr1"][0]
    with open(os.path.join(TEST_DIR, "mapping.psl")) as fh:
        assert genome_alignments.format_psl(aln) + "\n" == fh.read()


def test_read_sam(tmp_path):
    sam = ("@HD\tVN:1.6\n"
           "@SQ\tSN:chrT\tLN:5000\n"
           "chrQ\t0\tchrT\t101\t60\t5H50M10I40M20D10M\t*\t0\t0\t*\t*\n"
           "chrR\t16\tchrT\t1001\t60\t100M\t*\t0\t0\t*\t*\n")
    genome_alns = load_genome_alignments([write_file(tmp_path, "aln.sam", sam)])
    aln = genome_alns.alns_by_query["chrQ"][0]
    assert aln.query_size == 115
    assert aln.target_size == 5000
    assert [(b.query_block_start, b.query_block_end, b.target_block_start, b.target_block_end)
            for b in aln.blocks] == [(5, 55, 100, 150), (65, 105, 150, 190), (105, 115, 210, 220)]
    rev_aln = genome_alns.alns_by_query["chrR"][0]
    assert rev_aln.is_reverse
    assert rev_aln.project(0, 10)[0] == [(0, 10, 1090, 1100)]
