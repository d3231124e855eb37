"""
End-to-end tests for the generator pipeline and command line tool.
"""

import pytest
import numpy as np
import SimpleITK as sitk
from dfgen import DeformationFieldGenerator, GeneratorConfig
from dfgen.cli import main
from dfgen.core import DispatchRegistry, ScalarType, UnsupportedConfiguration, make_grid
from dfgen.io import load_dvf, write_points

SOURCE = np.array([[0.0, 0.0], [8.0, 0.0], [0.0, 6.0], [8.0, 6.0], [3.0, 2.0]])
SHIFT = np.array([1.0, 2.0])


@pytest.fixture
def reference(tmp_path):
    """2D short image of 6 x 5 pixels with 2 x 1 mm spacing."""
    image = sitk.GetImageFromArray(np.zeros((5, 6), dtype=np.int16))
    image.SetSpacing((2.0, 1.0))
    path = str(tmp_path / 'fixed.mha')
    sitk.WriteImage(image, path)
    return path


@pytest.fixture
def points(tmp_path):
    source_path = str(tmp_path / 'fixed_points.txt')
    target_path = str(tmp_path / 'moving_points.txt')
    write_points(source_path, SOURCE)
    write_points(target_path, SOURCE + SHIFT)
    return source_path, target_path


def test_cli_translation(tmp_path, reference, points):
    """Test that a translated landmark set gives a constant field."""
    out = tmp_path / 'deformation.mha'

    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(out), '--quiet'])

    assert code == 0
    field = load_dvf(str(out))
    assert field.vectors.shape == (6, 5, 2)
    assert field.grid.spacing == (2.0, 1.0)
    assert np.allclose(field.vectors, SHIFT, atol=1e-5)


@pytest.mark.parametrize('kernel', ['tps', 'TPSR2LOGR', 'VS', 'EBS', 'EBSR'])
def test_cli_kernels(tmp_path, reference, points, kernel):
    out = tmp_path / 'deformation.nii.gz'

    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(out), '-k', kernel, '-s', '0.1', '--quiet'])

    assert code == 0
    assert out.exists()


def test_cli_verbose_output(tmp_path, reference, points, capsys):
    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(tmp_path / 'deformation.npz')])

    captured = capsys.readouterr()
    assert code == 0
    assert 'PixelType' in captured.out
    assert 'int16' in captured.out
    assert 'Selected implementation: FieldGenerator(pixel=int16, dim=2)' in captured.out
    assert '[4/4]' in captured.out


def test_cli_count_mismatch(tmp_path, reference, points):
    short_path = str(tmp_path / 'short_points.txt')
    write_points(short_path, SOURCE[:3])
    out = tmp_path / 'deformation.mha'

    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', short_path,
                 '-out', str(out), '--quiet'])

    assert code == 3
    assert not out.exists()


def test_cli_index_points_need_second_image(tmp_path, reference):
    source_path = str(tmp_path / 'fixed_points.txt')
    target_path = str(tmp_path / 'moving_points.txt')
    indices = np.array([[0, 0], [4, 0], [0, 4], [4, 4]])
    write_points(source_path, indices, are_indices=True)
    write_points(target_path, indices + 1, are_indices=True)
    out = tmp_path / 'deformation.mha'

    args = ['-in1', reference, '-ipp1', source_path, '-ipp2', target_path, '-out', str(out), '--quiet']

    assert main(args) == 4
    assert not out.exists()

    # Each index set is resolved on its own image: one index step is (2, 1) mm
    assert main(args + ['-in2', reference]) == 0
    assert np.allclose(load_dvf(str(out)).vectors, [2.0, 1.0], atol=1e-5)


def test_cli_rotated_reference(tmp_path):
    """Test that direction cosines play no part in index conversion or the output."""
    image = sitk.GetImageFromArray(np.zeros((5, 6), dtype=np.int16))
    image.SetSpacing((2.0, 1.0))
    image.SetOrigin((10.0, 20.0))
    image.SetDirection((0.0, -1.0, 1.0, 0.0))
    reference = str(tmp_path / 'rotated.mha')
    sitk.WriteImage(image, reference)

    source_path = str(tmp_path / 'fixed_points.txt')
    target_path = str(tmp_path / 'moving_points.txt')
    indices = np.array([[0, 0], [4, 0], [0, 4], [4, 4]])
    write_points(source_path, indices, are_indices=True)
    write_points(target_path, indices + 1, are_indices=True)
    out = tmp_path / 'deformation.mha'

    with pytest.warns(UserWarning, match='direction cosines'):
        code = main(['-in1', reference, '-in2', reference, '-ipp1', source_path,
                     '-ipp2', target_path, '-out', str(out), '--quiet'])

    assert code == 0
    field = load_dvf(str(out))
    assert field.grid.origin == (10.0, 20.0)
    assert np.allclose(field.vectors, [2.0, 1.0], atol=1e-5)
    assert sitk.ReadImage(str(out)).GetDirection() == (1.0, 0.0, 0.0, 1.0)


def test_cli_singular_system(tmp_path, reference):
    source_path = str(tmp_path / 'fixed_points.txt')
    target_path = str(tmp_path / 'moving_points.txt')
    collinear = np.array([[0.0, 0.0], [1.0, 1.0], [2.0, 2.0]])
    write_points(source_path, collinear)
    write_points(target_path, collinear + SHIFT)
    out = tmp_path / 'deformation.mha'

    code = main(['-in1', reference, '-ipp1', source_path, '-ipp2', target_path,
                 '-out', str(out), '--quiet'])

    assert code == 5
    assert not out.exists()


def test_cli_vector_reference(tmp_path, points):
    image = sitk.GetImageFromArray(np.zeros((5, 6, 2), dtype=np.float32), isVector=True)
    reference = str(tmp_path / 'vector.mha')
    sitk.WriteImage(image, reference)

    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(tmp_path / 'deformation.mha'), '--quiet'])

    assert code == 2


def test_cli_missing_reference(tmp_path, points):
    code = main(['-in1', str(tmp_path / 'missing.mha'), '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(tmp_path / 'deformation.mha'), '--quiet'])

    assert code == 6


def test_cli_dimension_mismatch(tmp_path, points):
    reference = tmp_path / 'reference.npz'
    np.savez(reference, volume=np.zeros((4, 4, 4), dtype=np.float32))

    code = main(['-in1', str(reference), '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(tmp_path / 'deformation.mha'), '--quiet'])

    assert code == 3


def test_cli_config_file(tmp_path, reference, points):
    config = GeneratorConfig(verbose=False)
    config.evaluation.field_dtype = 'float64'
    config.evaluation.num_workers = 2
    config.evaluation.chunk_size = 7
    config_path = str(tmp_path / 'generator.yaml')
    config.to_yaml(config_path)
    out = tmp_path / 'deformation.npz'

    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(out), '--config', config_path])

    assert code == 0
    assert load_dvf(str(out)).dtype == np.float64


def test_cli_invalid_stiffness(tmp_path, reference, points):
    code = main(['-in1', reference, '-ipp1', points[0], '-ipp2', points[1],
                 '-out', str(tmp_path / 'deformation.mha'), '-s', '-1', '--quiet'])

    assert code == 2


def test_generator_result(tmp_path, reference, points):
    generator = DeformationFieldGenerator(GeneratorConfig(verbose=False))

    result = generator.generate(reference, points[0], points[1])

    assert result['descriptor'].scalar_type is ScalarType.INT16
    assert result['field_stats']['populated_cells'] == 30
    assert result['residuals']['max'] < 1e-6
    assert len(result['correspondences']) == 5
    assert 'kernel_fitting' in result['timing']


def test_generator_restricted_registry(reference, points):
    """Test that only registered pixel types are processed."""
    registry = DispatchRegistry()
    registry.register(ScalarType.FLOAT32, 2)
    generator = DeformationFieldGenerator(GeneratorConfig(verbose=False), registry=registry)

    with pytest.raises(UnsupportedConfiguration, match='pixel \\(component\\) type = int16'):
        generator.generate(reference, points[0], points[1])


def test_generate_from_arrays():
    generator = DeformationFieldGenerator(GeneratorConfig(verbose=False))
    source = np.array([[0.0, 0.0], [1.0, 1.0]])

    result = generator.generate_from_arrays(make_grid((2, 2)), source, source)

    assert np.array_equal(result['field'].vectors, np.zeros((2, 2, 2)))


if __name__ == '__main__':
    pytest.main([__file__])
