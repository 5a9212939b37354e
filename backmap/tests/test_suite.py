from backmap import gxf_io
import backmap.run_backmap
import os
import pytest

TEST_DIR = os.path.dirname(os.path.abspath(__file__))


def read_features(file_name):
    with gxf_io.GxfParser(file_name) as parser:
        return [record for record in parser if isinstance(record, gxf_io.GxfFeature)]


def find_features(features, featuretype, feature_id):
    return [f for f in features if f.featuretype == featuretype and f.type_id == feature_id]


def get_status(features, featuretype, feature_id):
    return [f.get_attr_value("remap_status") for f in find_features(features, featuretype, feature_id)]


def run_backmap(tmp_path, extra_args=None, input_annotation=None, suffix=".gff3"):
    # inputs
    alignments = os.path.join(TEST_DIR, "mapping.psl")
    if input_annotation is None:
        input_annotation = os.path.join(TEST_DIR, "source.gff3")

    # outputs
    mapped = str(tmp_path / ("mapped" + suffix))
    unmapped = str(tmp_path / ("unmapped" + suffix))

    # run the program
    args = (extra_args if extra_args is not None else []) + [alignments, input_annotation, mapped, unmapped]
    backmap.run_backmap.main(args)
    return mapped, unmapped


def test_backmap(tmp_path):
    mapped, unmapped = run_backmap(tmp_path)

    # verify the output
    with open(mapped) as fh:
        lines = fh.read().split("\n")
    assert lines[0:2] == ["##gff-version 3", "#description: backmap test annotation"]
    assert lines.count("###") == 2
    mapped_features = read_features(mapped)
    unmapped_features = read_features(unmapped)

    gene1 = find_features(mapped_features, "gene", "G1.1")[0]
    assert (gene1.start, gene1.end) == (1101, 1400)
    assert gene1.get_attr_value("remap_status") == "full_contig"
    assert gene1.get_attr_value("remap_num_mappings") == "1"
    assert gene1.get_attr_value("remap_original_id") == "G1.1"
    assert gene1.get_attr_value("remap_original_location") == "chr1:101-400"
    assert [(f.start, f.end, f.phase) for f in mapped_features if f.featuretype == "CDS"] == [
        (1151, 1200, "0"), (1301, 1350, "1")]

    assert get_status(mapped_features, "gene", "G2.1") == ["full_fragment"]
    assert get_status(mapped_features, "transcript", "T2.1") == ["full_fragment"]
    assert len(find_features(mapped_features, "exon", "exon:T2.1:2")) == 2

    assert get_status(mapped_features, "gene", "G3.1") == ["partial"]
    assert get_status(unmapped_features, "gene", "G3.1") == ["partial"]
    assert get_status(unmapped_features, "exon", "exon:T3.1:1") == ["partial"]

    assert find_features(mapped_features, "gene", "G4.1") == []
    assert get_status(unmapped_features, "gene", "G4.1") == ["no_seq_map"]
    assert get_status(unmapped_features, "exon", "exon:T4.1:1") == ["no_seq_map"]
    assert get_status(unmapped_features, "transcript", "T5.1") == ["deleted"]
    assert not any(f.has_attr("remap_target_status") for f in mapped_features)


def test_backmap_target_annotation(tmp_path):
    args = ['-target_annotation', os.path.join(TEST_DIR, "target.gff3")]
    mapped, unmapped = run_backmap(tmp_path, args)
    mapped_features = read_features(mapped)
    unmapped_features = read_features(unmapped)
    all_features = mapped_features + unmapped_features

    gene1 = find_features(mapped_features, "gene", "G1.1")[0]
    assert gene1.get_attr_value("remap_status") == "full_contig"
    assert gene1.get_attr_value("remap_target_status") == "overlap"
    assert find_features(mapped_features, "transcript", "T1.1")[0].get_attr_value("remap_target_status") == "overlap"

    gene2 = find_features(mapped_features, "gene", "G2.1")[0]
    assert gene2.get_attr_value("remap_status") == "gene_conflict"
    assert gene2.get_attr_value("remap_target_status") == "new"
    assert get_status(mapped_features, "transcript", "T2.1") == ["full_fragment"]

    assert set(get_status(all_features, "gene", "G3.1")) == {"automatic_gene"}
    assert get_status(all_features, "gene", "G4.1") == ["ineligible"]
    assert get_status(all_features, "gene", "G5.1") == ["deleted"]


def test_backmap_gtf(tmp_path):
    gtf_file = str(tmp_path / "source.gtf")
    with gxf_io.GxfWriter(gtf_file) as writer:
        for record in read_features(os.path.join(TEST_DIR, "source.gff3")):
            writer.write(record)
    mapped, unmapped = run_backmap(tmp_path, input_annotation=gtf_file, suffix=".gtf")
    with open(mapped) as fh:
        assert "ID=" not in fh.read()
    mapped_features = read_features(mapped)
    gene1 = find_features(mapped_features, "gene", "G1.1")[0]
    assert (gene1.start, gene1.end) == (1101, 1400)
    assert not gene1.has_attr("remap_original_id")
    assert get_status(mapped_features, "transcript", "T2.1") == ["full_fragment"]
    assert get_status(read_features(unmapped), "gene", "G4.1") == ["no_seq_map"]


def test_backmap_parallel(tmp_path):
    serial_dir = tmp_path / "serial"
    serial_dir.mkdir()
    parallel_dir = tmp_path / "parallel"
    parallel_dir.mkdir()
    serial = run_backmap(serial_dir)
    parallel = run_backmap(parallel_dir, ['-p', '2'])
    for serial_file, parallel_file in zip(serial, parallel):
        with open(serial_file) as fh1, open(parallel_file) as fh2:
            assert fh1.read() == fh2.read()


def test_transcript_alignments(tmp_path):
    psl_out = str(tmp_path / "transcripts.psl")
    run_backmap(tmp_path, ['-transcript_alignments', psl_out])
    with open(psl_out) as fh:
        names = [line.split("\t")[9] for line in fh]
    assert names == ["T1.1", "T2.1", "T3.1"]


def test_records_outside_genes(tmp_path):
    input_gff = tmp_path / "source.gff3"
    with open(os.path.join(TEST_DIR, "source.gff3")) as fh:
        source_lines = fh.read().split("\n")
    chromosome = "chr1\tEnsembl\tchromosome\t1\t10000\t.\t.\t.\tID=chromosome:chr1"
    region = "chr1\tEnsembl\tbiological_region\t51\t60\t.\t+\t.\tID=region1;external_name=CpG"
    input_gff.write_text("\n".join(source_lines[0:2] + [chromosome, region] + source_lines[2:]))
    mapped, unmapped = run_backmap(tmp_path, input_annotation=str(input_gff))
    with open(unmapped) as fh:
        unmapped_lines = fh.read().split("\n")
    assert unmapped_lines[1:3] == [chromosome, region]
    mapped_features = read_features(mapped)
    assert not any(f.featuretype in ("chromosome", "biological_region") for f in mapped_features)
    assert get_status(mapped_features, "gene", "G1.1") == ["full_contig"]


def test_errors(tmp_path):
    bad_gff = tmp_path / "bad.gff3"
    bad_gff.write_text("chr1\tHAVANA\tgene\t400\t101\t.\t+\t.\tID=G1\n")
    with pytest.raises(SystemExit) as error:
        run_backmap(tmp_path, input_annotation=str(bad_gff))
    assert "ERROR" in str(error.value)
    orphan_gff = tmp_path / "orphan.gff3"
    orphan_gff.write_text("chr1\tHAVANA\texon\t101\t400\t.\t+\t.\tID=E1;Parent=T1\n")
    with pytest.raises(SystemExit) as error:
        run_backmap(tmp_path, input_annotation=str(orphan_gff))
    assert "expected a gene or other top-level record" in str(error.value)
    with pytest.raises(SystemExit):
        backmap.run_backmap.main(['-p', '2', '-transcript_alignments', 'x.psl', 'a.psl', 'b.gff3', 'c', 'd'])


def test_no_output_after_error(tmp_path):
    source_gff = tmp_path / "source.gff3"
    with open(os.path.join(TEST_DIR, "source.gff3")) as fh:
        source_gff.write_text(fh.read() + "chr1\tHAVANA\texon\t101\t400\t.\t+\t.\tID=E9;Parent=T9\n")
    psl_out = str(tmp_path / "transcripts.psl")
    with pytest.raises(SystemExit):
        run_backmap(tmp_path, ['-transcript_alignments', psl_out], input_annotation=str(source_gff))
    assert not os.path.exists(str(tmp_path / "mapped.gff3"))
    assert not os.path.exists(str(tmp_path / "unmapped.gff3"))
    assert not os.path.exists(psl_out)
