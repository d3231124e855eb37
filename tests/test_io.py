"""
Tests for point files, reference headers and deformation field output.
"""

import pytest
import numpy as np
import nibabel as nib
import SimpleITK as sitk
from dfgen.core import Grid, make_grid, IOFailure, MalformedInput, ScalarType, UnsupportedConfiguration
from dfgen.deformation import DisplacementField
from dfgen.io import describe, read_points, write_points, save_dvf, load_dvf


def write_text(path, text):
    path.write_text(text)
    return str(path)


def make_field(grid, seed=0):
    rng = np.random.RandomState(seed)
    vectors = rng.normal(0, 2.0, size=(*grid.size, grid.dimension)).astype(np.float32)
    return DisplacementField(vectors=vectors, grid=grid)


# Point files

def test_read_physical_points(tmp_path):
    path = write_text(tmp_path / 'points.txt', "point\n3\n1 2\n3.5 4\n-5 6e1\n")

    point_set = read_points(path)

    assert not point_set.are_indices
    assert len(point_set) == 3
    assert point_set.dimension == 2
    assert np.allclose(point_set.points, [[1, 2], [3.5, 4], [-5, 60]])


def test_read_index_points(tmp_path):
    """Test that indices are the default when the header word is absent."""
    tagged = write_text(tmp_path / 'tagged.txt', "index\n2\n1 2 3\n4 5 6\n")
    untagged = write_text(tmp_path / 'untagged.txt', "2\n1 2 3\n4 5 6\n")
    inline = write_text(tmp_path / 'inline.txt', "index 2\n1 2 3\n4 5 6\n")

    for path in (tagged, untagged, inline):
        point_set = read_points(path, dimension=3)
        assert point_set.are_indices
        assert point_set.points.shape == (2, 3)


@pytest.mark.parametrize('text', [
    "",
    "point\n",
    "point\n3\n1 2\n3 4\n",
    "point\n2\n1 2\n3 4 5\n",
    "point\n2\n1 a\n3 4\n",
    "point\n2\n1 nan\n3 4\n",
    "point\n2 2\n1 2\n3 4\n",
])
def test_read_malformed_points(tmp_path, text):
    path = write_text(tmp_path / 'points.txt', text)

    with pytest.raises(MalformedInput):
        read_points(path)


def test_read_points_dimension_check(tmp_path):
    path = write_text(tmp_path / 'points.txt', "point\n2\n1 2\n3 4\n")

    with pytest.raises(MalformedInput):
        read_points(path, dimension=3)


def test_read_undecodable_points(tmp_path):
    path = tmp_path / 'points.txt'
    path.write_bytes(b'\xff\xfe\n2\n1 2\n3 4\n')

    with pytest.raises(MalformedInput):
        read_points(str(path))


def test_read_missing_points(tmp_path):
    with pytest.raises(MalformedInput):
        read_points(str(tmp_path / 'missing.txt'))


def test_write_points(tmp_path):
    points = np.array([[0.1, 2.0, -3.25], [4.0, 5.5, 6.0]])
    path = str(tmp_path / 'out' / 'points.txt')

    write_points(path, points)
    point_set = read_points(path)

    assert not point_set.are_indices
    assert np.array_equal(point_set.points, points)


# Reference headers

def test_describe_numpy(tmp_path):
    path = tmp_path / 'reference.npz'
    np.savez(path, volume=np.zeros((4, 5, 6), dtype=np.int16),
             spacing=np.array([0.5, 1.0, 2.0]), origin=np.array([1.0, 2.0, 3.0]))

    descriptor = describe(str(path))

    assert descriptor.scalar_type is ScalarType.INT16
    assert descriptor.dimension == 3
    assert descriptor.grid == Grid(size=(4, 5, 6), spacing=(0.5, 1.0, 2.0), origin=(1.0, 2.0, 3.0))


def test_describe_numpy_without_volume(tmp_path):
    path = tmp_path / 'reference.npz'
    np.savez(path, data=np.zeros((4, 5)))

    with pytest.raises(MalformedInput):
        describe(str(path))


def test_describe_sitk(tmp_path):
    image = sitk.GetImageFromArray(np.zeros((5, 6), dtype=np.uint8))
    image.SetSpacing((2.0, 0.5))
    image.SetOrigin((-10.0, 4.0))
    path = str(tmp_path / 'reference.mha')
    sitk.WriteImage(image, path)

    descriptor = describe(path)

    assert descriptor.scalar_type is ScalarType.UINT8
    assert descriptor.components == 1
    assert descriptor.size == (6, 5)
    assert descriptor.grid.spacing == (2.0, 0.5)
    assert descriptor.grid.origin == (-10.0, 4.0)


def test_describe_sitk_vector(tmp_path):
    image = sitk.GetImageFromArray(np.zeros((5, 6, 3), dtype=np.float32), isVector=True)
    path = str(tmp_path / 'vector.mha')
    sitk.WriteImage(image, path)

    descriptor = describe(path)

    assert descriptor.scalar_type is ScalarType.FLOAT32
    assert descriptor.components == 3


def test_describe_ignores_direction(tmp_path):
    """Test that a rotated reference maps indices through origin + spacing * index."""
    image = sitk.GetImageFromArray(np.zeros((4, 5), dtype=np.int16))
    image.SetSpacing((2.0, 3.0))
    image.SetOrigin((10.0, 20.0))
    image.SetDirection((0.0, -1.0, 1.0, 0.0))
    path = str(tmp_path / 'rotated.mha')
    sitk.WriteImage(image, path)

    descriptor = describe(path)

    assert np.allclose(descriptor.direction, [[0.0, -1.0], [1.0, 0.0]])
    assert not descriptor.has_identity_direction
    assert np.allclose(descriptor.grid.index_to_physical(np.array([1, 1])), [12.0, 23.0])


def test_describe_nifti(tmp_path):
    path = str(tmp_path / 'reference.nii.gz')
    nib.save(nib.Nifti1Image(np.zeros((4, 5, 6), dtype=np.int16), np.diag([2.0, 3.0, 4.0, 1.0])), path)

    descriptor = describe(path)

    assert descriptor.scalar_type is ScalarType.INT16
    assert descriptor.size == (4, 5, 6)
    assert np.allclose(descriptor.spacing, (2.0, 3.0, 4.0))
    assert np.allclose(descriptor.direction, np.diag([-1.0, -1.0, 1.0]))


def test_describe_unsupported_pixel_type(tmp_path):
    path = tmp_path / 'reference.npy'
    np.save(path, np.zeros((4, 4), dtype=np.complex64))

    with pytest.raises(UnsupportedConfiguration):
        describe(str(path))


def test_describe_missing(tmp_path):
    with pytest.raises(IOFailure):
        describe(str(tmp_path / 'missing.mha'))


# Deformation fields

@pytest.mark.parametrize('name', ['field.mha', 'field.nii.gz', 'field.npz'])
def test_save_load_3d(tmp_path, name):
    grid = Grid(size=(4, 5, 6), spacing=(0.5, 1.0, 2.0), origin=(1.0, -2.0, 3.0))
    field = make_field(grid)
    path = str(tmp_path / name)

    save_dvf(path, field)
    loaded = load_dvf(path)

    assert loaded.vectors.shape == (4, 5, 6, 3)
    assert np.allclose(loaded.vectors, field.vectors)
    assert np.allclose(loaded.grid.spacing, grid.spacing)
    assert np.allclose(loaded.grid.origin, grid.origin)


@pytest.mark.parametrize('name', ['field.mha', 'field.nii', 'field.npz'])
def test_save_load_2d(tmp_path, name):
    grid = make_grid((7, 3), spacing=(1.5, 0.25))
    field = make_field(grid, seed=1)
    path = str(tmp_path / name)

    save_dvf(path, field)
    loaded = load_dvf(path)

    assert loaded.vectors.shape == (7, 3, 2)
    assert np.allclose(loaded.vectors, field.vectors)
    assert np.allclose(loaded.grid.spacing, grid.spacing)


def test_save_load_separate_data_file(tmp_path):
    """Test that .mhd headers keep pointing at their final .raw data file."""
    field = make_field(make_grid((4, 3, 2), spacing=(1.0, 2.0, 0.5)))
    out_dir = tmp_path / 'out'
    path = out_dir / 'field.mhd'

    save_dvf(str(path), field)

    assert sorted(p.name for p in out_dir.iterdir()) == ['field.mhd', 'field.raw']
    assert 'ElementDataFile = field.raw' in path.read_text()
    assert np.allclose(load_dvf(str(path)).vectors, field.vectors)


def test_save_creates_directories(tmp_path):
    field = make_field(make_grid((3, 3)))
    path = tmp_path / 'nested' / 'dir' / 'field.mha'

    save_dvf(str(path), field)

    assert path.exists()


def test_save_component_type(tmp_path):
    field = make_field(make_grid((3, 3)))
    path = str(tmp_path / 'field.npz')

    save_dvf(path, field, dtype='float64')
    assert load_dvf(path).dtype == np.float64

    with pytest.raises(IOFailure):
        save_dvf(str(tmp_path / 'int.npz'), field, dtype='int16')


def test_save_rejects_non_finite(tmp_path):
    field = make_field(make_grid((3, 3)))
    field.vectors[1, 1, 0] = np.nan
    path = tmp_path / 'field.mha'

    with pytest.raises(IOFailure):
        save_dvf(str(path), field)
    assert not path.exists()


def test_failed_write_leaves_nothing(tmp_path):
    """Test that a failed write leaves no partial or temporary file."""
    field = make_field(make_grid((3, 3)))
    out_dir = tmp_path / 'out'
    out_dir.mkdir()

    with pytest.raises(IOFailure):
        save_dvf(str(out_dir / 'field.unknownformat'), field)

    assert list(out_dir.iterdir()) == []


def test_unwritable_destination(tmp_path):
    blocker = tmp_path / 'blocker'
    blocker.write_text('not a directory')
    field = make_field(make_grid((3, 3)))

    with pytest.raises(IOFailure):
        save_dvf(str(blocker / 'field.mha'), field)


if __name__ == '__main__':
    pytest.main([__file__])
